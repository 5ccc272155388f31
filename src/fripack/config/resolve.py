"""Inheritance flattening and per-type validation of target configurations."""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from fripack.errors import (
    ConfigError,
    CyclicInheritanceError,
    InvalidVersionError,
    MissingFieldError,
    MissingParentError,
    UnknownTargetError,
    UnsupportedPlatformError,
    UnsupportedTargetTypeError,
    UntypedTargetError,
)
from fripack.models import (
    SUPPORTED_PLATFORMS,
    AndroidSoOptions,
    ConfigDocument,
    RawTargetSpec,
    ResolvedTargetConfig,
    SigningConfig,
    TargetOptions,
    TargetType,
    XposedOptions,
)

MINIMUM_FRIDA_VERSION = (17, 0, 0)
SUPPORTED_MODES = ("embedjs",)

_VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")

COMMON_REQUIRED_FIELDS = ("entry", "fridaVersion", "platform")
XPOSED_REQUIRED_FIELDS = ("packageName", "name")
SIGNING_FIELDS = ("keystore", "keystorePass", "keystoreAlias")


def inheritance_chain(document: ConfigDocument, name: str) -> tuple[RawTargetSpec, ...]:
    """Return ``(target, parent, grandparent, ...)`` for *name*.

    Each name is visited at most once, so a cyclic chain fails instead of
    looping.
    """
    if name not in document.targets:
        raise UnknownTargetError([name], available=document.names())

    chain: list[RawTargetSpec] = []
    visited: set[str] = set()
    current: str | None = name
    while current is not None:
        if current in visited:
            names = [spec.name for spec in chain]
            raise CyclicInheritanceError([*names, current])
        visited.add(current)
        spec = document.targets.get(current)
        if spec is None:
            raise MissingParentError(current, target=chain[-1].name)
        chain.append(spec)
        current = spec.inherit
    return tuple(chain)


def flatten(document: ConfigDocument, name: str) -> dict[str, Any]:
    """Merge the inheritance chain of *name* into one effective field mapping.

    The furthest ancestor is applied first and every descendant overlays its
    own keys. Keys absent from a fragment inherit; keys present with ``None``
    override the inherited value. A fragment that failed to parse fails every
    target whose chain passes through it.
    """
    effective: dict[str, Any] = {}
    chain = inheritance_chain(document, name)
    for spec in chain:
        if spec.error is not None:
            context = dict(spec.error.context)
            if spec.name != name:
                context["inherited_by"] = name
            raise ConfigError(spec.error.message, hint=spec.error.hint, context=context)
    for spec in reversed(chain):
        effective.update(spec.fields)
    return effective


def buildable_targets(document: ConfigDocument) -> tuple[str, ...]:
    """Names built by a bare ``build``: every target whose flattened type is set.

    Targets whose chain cannot be flattened are kept so that the failure is
    reported for them rather than silently dropped.
    """
    names: list[str] = []
    for name in document.targets:
        try:
            fields = flatten(document, name)
        except ConfigError:
            names.append(name)
            continue
        if fields.get("type") is not None:
            names.append(name)
    return tuple(names)


def resolve_target(document: ConfigDocument, name: str) -> ResolvedTargetConfig:
    fields = flatten(document, name)

    raw_type = fields.get("type")
    if raw_type is None:
        raise UntypedTargetError(name)
    try:
        target_type = TargetType(raw_type)
    except ValueError as exc:
        raise UnsupportedTargetTypeError(
            str(raw_type),
            target=name,
            supported=[str(item) for item in TargetType],
        ) from exc

    for field_name in COMMON_REQUIRED_FIELDS:
        _required(fields, field_name, target=name)

    frida_version = _validate_version(fields["fridaVersion"], target=name)
    platform = fields["platform"]
    if platform not in SUPPORTED_PLATFORMS[target_type]:
        raise UnsupportedPlatformError(
            platform,
            target=name,
            supported=SUPPORTED_PLATFORMS[target_type],
        )

    mode = fields.get("mode") or SUPPORTED_MODES[0]
    if mode not in SUPPORTED_MODES:
        raise ConfigError(
            f"Unsupported mode `{mode}`.",
            hint="Supported modes: " + ", ".join(SUPPORTED_MODES),
            context={"target": name, "mode": mode},
        )

    root = document.root
    override = fields.get("overridePrebuildFile")
    return ResolvedTargetConfig(
        name=name,
        target_type=target_type,
        entry=_path(root, fields["entry"]),
        configured_entry=fields["entry"],
        frida_version=frida_version,
        platform=platform,
        output_dir=_path(root, fields.get("outputDir") or "."),
        options=_options(target_type, fields, target=name, root=root),
        version=fields.get("version") or None,
        xz=bool(fields.get("xz")),
        mode=mode,
        override_prebuild_file=_path(root, override) if override else None,
    )


def _options(
    target_type: TargetType,
    fields: Mapping[str, Any],
    *,
    target: str,
    root: Path,
) -> TargetOptions:
    if target_type is TargetType.ANDROID_SO:
        return AndroidSoOptions()

    for field_name in XPOSED_REQUIRED_FIELDS:
        _required(fields, field_name, target=target)

    signing: SigningConfig | None = None
    if fields.get("sign"):
        for field_name in SIGNING_FIELDS:
            _required(fields, field_name, target=target, reason="`sign` is true")
        signing = SigningConfig(
            keystore=_path(root, fields["keystore"]),
            keystore_pass=fields["keystorePass"],
            keystore_alias=fields["keystoreAlias"],
        )

    icon = fields.get("icon")
    return XposedOptions(
        package_name=fields["packageName"],
        display_name=fields["name"],
        scope=_scope(fields.get("scope")),
        description=fields.get("description") or None,
        icon=_path(root, icon) if icon else None,
        signing=signing,
    )


def _required(
    fields: Mapping[str, Any],
    field_name: str,
    *,
    target: str,
    reason: str | None = None,
) -> Any:
    value = fields.get(field_name)
    if value is None or value == "":
        raise MissingFieldError(field_name, target=target, reason=reason)
    return value


def _validate_version(version: str, *, target: str) -> str:
    minimum = ".".join(str(part) for part in MINIMUM_FRIDA_VERSION)
    match = _VERSION_PATTERN.fullmatch(version.strip())
    if match is None:
        raise InvalidVersionError(version, target=target, minimum=minimum)
    if tuple(int(part) for part in match.groups()) < MINIMUM_FRIDA_VERSION:
        raise InvalidVersionError(version, target=target, minimum=minimum)
    return match.group(0)


def _scope(value: str | list[str] | None) -> tuple[str, ...]:
    if not value:
        return ()
    items = value.split(",") if isinstance(value, str) else value
    return tuple(dict.fromkeys(item.strip() for item in items if item.strip()))


def _path(root: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else (root / path).resolve()
