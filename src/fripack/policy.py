"""Policy configuration and runtime settings."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal

NetworkMode = Literal["online", "offline"]

DEFAULT_RELEASES_REPO = "FriRebuild/fripack-inject"
DEFAULT_JOBS = 4


@dataclass(frozen=True, slots=True)
class Policy:
    network_mode: NetworkMode = "online"
    require_integrity: bool = True

    @property
    def offline(self) -> bool:
        return self.network_mode == "offline"


@dataclass(frozen=True, slots=True)
class Settings:
    cache_dir: Path = field(default_factory=lambda: Path.home() / ".fripack")
    jobs: int = DEFAULT_JOBS
    releases_repo: str = DEFAULT_RELEASES_REPO
    tool_overrides: Mapping[str, str] = field(default_factory=dict)
    policy: Policy = field(default_factory=Policy)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        settings = cls()
        if env.get("FRIPACK_CACHE_DIR"):
            settings = replace(settings, cache_dir=Path(env["FRIPACK_CACHE_DIR"]).expanduser())
        if env.get("FRIPACK_JOBS"):
            settings = replace(settings, jobs=_positive_int(env["FRIPACK_JOBS"], DEFAULT_JOBS))
        if env.get("FRIPACK_RELEASES_REPO"):
            settings = replace(settings, releases_repo=env["FRIPACK_RELEASES_REPO"])
        if _truthy(env.get("FRIPACK_OFFLINE", "")):
            settings = replace(settings, policy=replace(settings.policy, network_mode="offline"))

        overrides: dict[str, str] = {}
        for tool, variable in (("apktool", "FRIPACK_APKTOOL"), ("apksigner", "FRIPACK_APKSIGNER")):
            if env.get(variable):
                overrides[tool] = env[variable]
        if overrides:
            settings = replace(settings, tool_overrides=overrides)
        return settings

    @property
    def binaries_dir(self) -> Path:
        return self.cache_dir / "cache"


def _truthy(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _positive_int(value: str, fallback: int) -> int:
    try:
        parsed = int(value)
    except ValueError:
        return fallback
    return parsed if parsed > 0 else fallback
