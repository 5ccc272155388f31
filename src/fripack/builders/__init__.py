"""Target builders, one per target type."""

from __future__ import annotations

from collections.abc import Mapping

from fripack.models import TargetType

from .android_so import AndroidSoBuilder
from .base import BuildContext, TargetBuilder, engine_library
from .materialize import materialize_artifact
from .xposed import XposedBuilder


def default_builders() -> dict[TargetType, TargetBuilder]:
    return {
        TargetType.ANDROID_SO: AndroidSoBuilder(),
        TargetType.XPOSED: XposedBuilder(),
    }


def check_registry(builders: Mapping[TargetType, TargetBuilder]) -> None:
    missing = set(TargetType) - set(builders)
    if missing:
        names = ", ".join(sorted(str(item) for item in missing))
        raise TypeError(f"No builder registered for target type(s): {names}")


check_registry(default_builders())

__all__ = [
    "AndroidSoBuilder",
    "BuildContext",
    "TargetBuilder",
    "XposedBuilder",
    "check_registry",
    "default_builders",
    "engine_library",
    "materialize_artifact",
]
