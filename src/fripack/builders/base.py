"""Typed interfaces for target builders."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Protocol

from fripack.cache import BinaryCache
from fripack.models import BuildRequest, CachedBinary, ResolvedTargetConfig, TargetType
from fripack.observability import StructuredLogger
from fripack.tools import ToolInvoker


@dataclass(slots=True)
class BuildContext:
    cache: BinaryCache
    invoker: ToolInvoker
    logger: StructuredLogger = field(default_factory=StructuredLogger)


class TargetBuilder(Protocol):
    name: str

    def required_tools(self, config: ResolvedTargetConfig) -> tuple[str, ...]:
        """Return external executables this target needs before any step runs."""

    def build(self, request: BuildRequest, context: BuildContext) -> Path:
        """Produce the target's artifact and return its final path."""


def engine_library(context: BuildContext, config: ResolvedTargetConfig) -> CachedBinary:
    """Return the engine shared object for the target's version and platform."""
    key = replace(config.binary_key, target_type=TargetType.ANDROID_SO)
    if config.override_prebuild_file is not None:
        return context.cache.adopt(key, config.override_prebuild_file)
    return context.cache.acquire(key)
