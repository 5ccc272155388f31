"""Public package entrypoint for fripack."""

from .builders import AndroidSoBuilder, BuildContext, XposedBuilder, default_builders
from .cache import BinaryCache
from .config import find_config_file, load_document, resolve_target
from .errors import (
    BinaryAcquisitionError,
    BinaryNotFoundError,
    BuildCancelledError,
    ConfigError,
    CyclicInheritanceError,
    DownloadError,
    ErrorCode,
    FripackError,
    IOFailure,
    PackagingToolFailure,
    ToolNotFoundError,
)
from .models import (
    BuildRequest,
    BuildResult,
    CachedBinary,
    ConfigDocument,
    EngineBinaryKey,
    RawTargetSpec,
    ResolvedTargetConfig,
    TargetType,
)
from .orchestrator import BuildOrchestrator, exit_status
from .policy import Policy, Settings
from .tools import SubprocessInvoker, ToolResult

__version__ = "0.1.0"

__all__ = [
    "AndroidSoBuilder",
    "BinaryAcquisitionError",
    "BinaryCache",
    "BinaryNotFoundError",
    "BuildCancelledError",
    "BuildContext",
    "BuildOrchestrator",
    "BuildRequest",
    "BuildResult",
    "CachedBinary",
    "ConfigDocument",
    "ConfigError",
    "CyclicInheritanceError",
    "DownloadError",
    "EngineBinaryKey",
    "ErrorCode",
    "FripackError",
    "IOFailure",
    "PackagingToolFailure",
    "Policy",
    "RawTargetSpec",
    "ResolvedTargetConfig",
    "Settings",
    "SubprocessInvoker",
    "TargetType",
    "ToolNotFoundError",
    "ToolResult",
    "XposedBuilder",
    "default_builders",
    "exit_status",
    "find_config_file",
    "load_document",
    "resolve_target",
]
