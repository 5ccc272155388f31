"""Typed error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across the build pipeline."""

    CONFIG = "E_CONFIG"
    BINARY_ACQUISITION = "E_BINARY_ACQUISITION"
    TOOL_NOT_FOUND = "E_TOOL_NOT_FOUND"
    PACKAGING_TOOL = "E_PACKAGING_TOOL"
    IO = "E_IO"
    CANCELLED = "E_CANCELLED"
    INTERNAL = "E_INTERNAL"


class FripackError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": self.message,
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


# ── Configuration ───────────────────────────────────────────────────


class ConfigError(FripackError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.CONFIG, hint=hint, context=context)


class CyclicInheritanceError(ConfigError):
    """An ``inherit`` chain loops back onto a target already visited."""

    def __init__(self, chain: Sequence[str]) -> None:
        self.chain = tuple(chain)
        super().__init__(
            "Cyclic inheritance detected: " + " -> ".join(self.chain),
            hint="Remove one of the `inherit` references so the chain terminates.",
            context={"chain": " -> ".join(self.chain)},
        )


class MissingParentError(ConfigError):
    def __init__(self, parent: str, *, target: str) -> None:
        self.parent = parent
        super().__init__(
            f"Target `{target}` inherits from `{parent}`, which does not exist.",
            hint="Fix the `inherit` value or declare the missing target.",
            context={"target": target, "inherit": parent},
        )


class MissingFieldError(ConfigError):
    def __init__(self, field_name: str, *, target: str, reason: str | None = None) -> None:
        self.field_name = field_name
        message = f"Target `{target}` is missing required field `{field_name}`"
        message += f" ({reason})." if reason else "."
        super().__init__(
            message,
            hint=f"Set `{field_name}` on the target or on one of its ancestors.",
            context={"target": target, "field": field_name},
        )


class UnknownTargetError(ConfigError):
    def __init__(self, names: Sequence[str], *, available: Sequence[str] = ()) -> None:
        self.names = tuple(names)
        super().__init__(
            "Unknown target(s): " + ", ".join(self.names),
            hint="Check the target names against the configuration document.",
            context={"requested": ",".join(self.names), "available": ",".join(available)},
        )


class UntypedTargetError(ConfigError):
    def __init__(self, target: str) -> None:
        super().__init__(
            f"Target `{target}` has no `type` and cannot be built.",
            hint="Targets without `type` only serve as `inherit` bases; set `type` to build it.",
            context={"target": target},
        )


class UnsupportedTargetTypeError(ConfigError):
    def __init__(self, target_type: str, *, target: str, supported: Sequence[str] = ()) -> None:
        self.target_type = target_type
        super().__init__(
            f"Unsupported target type `{target_type}`.",
            hint="Supported types: " + ", ".join(supported) if supported else None,
            context={"target": target, "type": target_type},
        )


class UnsupportedPlatformError(ConfigError):
    def __init__(self, platform: str, *, target: str, supported: Sequence[str] = ()) -> None:
        super().__init__(
            f"Unsupported platform `{platform}`.",
            hint="Supported platforms: " + ", ".join(supported) if supported else None,
            context={"target": target, "platform": platform},
        )


class InvalidVersionError(ConfigError):
    def __init__(self, version: str, *, target: str, minimum: str) -> None:
        super().__init__(
            f"Invalid fridaVersion `{version}`.",
            hint=f"Use a MAJOR.MINOR.PATCH release, {minimum} or newer.",
            context={"target": target, "fridaVersion": version, "minimum": minimum},
        )


# ── Engine binaries ─────────────────────────────────────────────────


class BinaryAcquisitionError(FripackError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.BINARY_ACQUISITION, hint=hint, context=context)


class BinaryNotFoundError(BinaryAcquisitionError):
    pass


class DownloadError(BinaryAcquisitionError):
    pass


# ── External tools ──────────────────────────────────────────────────


class ToolNotFoundError(FripackError):
    def __init__(self, tool: str, *, hint: str | None = None) -> None:
        self.tool = tool
        super().__init__(
            f"Required external tool `{tool}` was not found in PATH.",
            code=ErrorCode.TOOL_NOT_FOUND,
            hint=hint or f"Install `{tool}` and make sure it is on PATH.",
            context={"tool": tool},
        )


class PackagingToolFailure(FripackError):
    """An external packaging tool exited with a non-zero status."""

    def __init__(
        self,
        *,
        step: str,
        tool: str,
        returncode: int,
        stderr: str,
        command: Sequence[str] = (),
        hint: str | None = None,
    ) -> None:
        self.step = step
        self.tool = tool
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"`{tool}` failed during {step} (exit status {returncode}).",
            code=ErrorCode.PACKAGING_TOOL,
            hint=hint,
            context={
                "step": step,
                "tool": tool,
                "returncode": str(returncode),
                "command": " ".join(command),
                "stderr": stderr[-4000:] if stderr else "",
            },
        )


# ── Filesystem / lifecycle ──────────────────────────────────────────


class IOFailure(FripackError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.IO, hint=hint, context=context)


class BuildCancelledError(FripackError):
    def __init__(self, target: str) -> None:
        super().__init__(
            f"Build of `{target}` was cancelled before it started.",
            code=ErrorCode.CANCELLED,
            context={"target": target},
        )


class InternalBuildError(FripackError):
    """An exception outside the error taxonomy escaped a target build."""

    def __init__(self, target: str, error: BaseException) -> None:
        super().__init__(
            f"Unexpected {type(error).__name__} while building `{target}`.",
            code=ErrorCode.INTERNAL,
            context={"target": target, "error": str(error)},
        )


__all__ = [
    "BinaryAcquisitionError",
    "BinaryNotFoundError",
    "BuildCancelledError",
    "ConfigError",
    "CyclicInheritanceError",
    "DownloadError",
    "ErrorCode",
    "FripackError",
    "IOFailure",
    "InternalBuildError",
    "InvalidVersionError",
    "MissingFieldError",
    "MissingParentError",
    "PackagingToolFailure",
    "ToolNotFoundError",
    "UnknownTargetError",
    "UnsupportedPlatformError",
    "UnsupportedTargetTypeError",
    "UntypedTargetError",
]
