"""Core typed dataclasses for target configuration and build requests/results."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType
from typing import Any

from .errors import FripackError


class TargetType(StrEnum):
    ANDROID_SO = "android-so"
    XPOSED = "xposed"


# Android ABI name -> ELF ``e_machine`` of the engine library built for it.
PLATFORM_MACHINES: Mapping[str, str] = MappingProxyType(
    {
        "arm64-v8a": "EM_AARCH64",
        "armeabi-v7a": "EM_ARM",
        "x86": "EM_386",
        "x86_64": "EM_X86_64",
        "linux-x86_64": "EM_X86_64",
    }
)

ANDROID_ABIS = ("arm64-v8a", "armeabi-v7a", "x86", "x86_64")

SUPPORTED_PLATFORMS: Mapping[TargetType, tuple[str, ...]] = MappingProxyType(
    {
        TargetType.ANDROID_SO: (*ANDROID_ABIS, "linux-x86_64"),
        TargetType.XPOSED: ANDROID_ABIS,
    }
)


@dataclass(frozen=True, slots=True)
class RawTargetSpec:
    """One target fragment exactly as authored in the configuration document.

    ``fields`` never contains ``inherit``. A key missing from ``fields`` means
    "inherit from the parent"; a key present with value ``None`` overrides the
    parent's value with "unset".

    ``error`` holds a problem found while parsing this fragment. It fails this
    target and every target inheriting from it, never the whole document.
    """

    name: str
    inherit: str | None = None
    fields: Mapping[str, Any] = field(default_factory=dict)
    error: FripackError | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))


@dataclass(frozen=True, slots=True)
class ConfigDocument:
    """A parsed configuration document: target name -> raw spec."""

    path: Path
    targets: Mapping[str, RawTargetSpec]

    @property
    def root(self) -> Path:
        return self.path.parent

    def names(self) -> tuple[str, ...]:
        return tuple(self.targets)


@dataclass(frozen=True, slots=True)
class SigningConfig:
    keystore: Path
    keystore_pass: str = field(repr=False)
    keystore_alias: str


@dataclass(frozen=True, slots=True)
class AndroidSoOptions:
    pass


@dataclass(frozen=True, slots=True)
class XposedOptions:
    package_name: str
    display_name: str
    scope: tuple[str, ...] = ()
    description: str | None = None
    icon: Path | None = None
    signing: SigningConfig | None = None


TargetOptions = AndroidSoOptions | XposedOptions


@dataclass(frozen=True, slots=True)
class ResolvedTargetConfig:
    name: str
    target_type: TargetType
    entry: Path
    frida_version: str
    platform: str
    output_dir: Path
    options: TargetOptions
    version: str | None = None
    xz: bool = False
    mode: str = "embedjs"
    override_prebuild_file: Path | None = None
    configured_entry: str | None = None

    @property
    def binary_key(self) -> EngineBinaryKey:
        return EngineBinaryKey(
            frida_version=self.frida_version,
            platform=self.platform,
            target_type=self.target_type,
        )


@dataclass(frozen=True, slots=True)
class EngineBinaryKey:
    frida_version: str
    platform: str
    target_type: TargetType

    @property
    def cache_filename(self) -> str:
        suffix = "apk" if self.target_type is TargetType.XPOSED else "so"
        return f"fripack-{self.target_type}-{self.platform}-{self.frida_version}.{suffix}"

    def describe(self) -> dict[str, str]:
        return {
            "fridaVersion": self.frida_version,
            "platform": self.platform,
            "type": str(self.target_type),
        }


@dataclass(frozen=True, slots=True)
class CachedBinary:
    key: EngineBinaryKey
    path: Path
    sha256: str
    size: int

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


@dataclass(frozen=True, slots=True)
class BuildRequest:
    config: ResolvedTargetConfig
    entry: Path


@dataclass(frozen=True, slots=True)
class BuildResult:
    target: str
    artifact: Path | None = None
    error: FripackError | None = None

    def __post_init__(self) -> None:
        if (self.artifact is None) == (self.error is None):
            raise ValueError("BuildResult needs exactly one of artifact or error.")

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, target: str, artifact: Path) -> BuildResult:
        return cls(target=target, artifact=artifact)

    @classmethod
    def failure(cls, target: str, error: FripackError) -> BuildResult:
        return cls(target=target, error=error)

    def to_dict(self) -> dict[str, object]:
        if self.error is not None:
            return {"target": self.target, "ok": False, "error": self.error.to_dict()}
        return {"target": self.target, "ok": True, "artifact": str(self.artifact)}


__all__ = [
    "ANDROID_ABIS",
    "AndroidSoOptions",
    "BuildRequest",
    "BuildResult",
    "CachedBinary",
    "ConfigDocument",
    "EngineBinaryKey",
    "PLATFORM_MACHINES",
    "RawTargetSpec",
    "ResolvedTargetConfig",
    "SUPPORTED_PLATFORMS",
    "SigningConfig",
    "TargetOptions",
    "TargetType",
    "XposedOptions",
]
