"""Configuration document discovery, parsing and templating."""

from __future__ import annotations

import json
import warnings
from pathlib import Path
from typing import Any

import json5

from fripack.errors import ConfigError
from fripack.models import ConfigDocument, RawTargetSpec

CONFIG_FILENAMES = ("fripack.json", "fripack.config.json")

STRING_FIELDS = frozenset(
    {
        "type",
        "entry",
        "fridaVersion",
        "outputDir",
        "platform",
        "version",
        "mode",
        "overridePrebuildFile",
        "packageName",
        "name",
        "description",
        "keystore",
        "keystorePass",
        "keystoreAlias",
        "icon",
    }
)
BOOL_FIELDS = frozenset({"xz", "sign"})
KNOWN_FIELDS = STRING_FIELDS | BOOL_FIELDS | {"inherit", "scope"}


class UnknownFieldWarning(UserWarning):
    """Warning emitted for configuration fields fripack does not recognize."""


def find_config_file(start: str | Path) -> Path:
    """Return the nearest configuration file in *start* or one of its parents."""
    current = Path(start).resolve()
    for directory in (current, *current.parents):
        for filename in CONFIG_FILENAMES:
            candidate = directory / filename
            if candidate.is_file():
                return candidate
    raise ConfigError(
        "Could not find a fripack configuration file.",
        hint="Run `fripack init` or pass --config explicitly.",
        context={"searched_from": str(current), "filenames": ",".join(CONFIG_FILENAMES)},
    )


def load_document(path: str | Path) -> ConfigDocument:
    config_path = Path(path).resolve()
    try:
        raw = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(
            "Configuration file does not exist.",
            hint="Run `fripack init` to create one.",
            context={"path": str(config_path)},
        ) from exc
    except OSError as exc:
        raise ConfigError(
            "Configuration file could not be read.",
            hint=str(exc),
            context={"path": str(config_path)},
        ) from exc
    except UnicodeDecodeError as exc:
        raise ConfigError(
            "Configuration file is not valid UTF-8.",
            hint=str(exc),
            context={"path": str(config_path)},
        ) from exc
    return parse_document(raw, path=config_path)


def parse_document(raw: str, *, path: str | Path) -> ConfigDocument:
    config_path = Path(path)
    try:
        payload = json5.loads(raw)
    except ValueError as exc:
        raise ConfigError(
            "Configuration file is not valid JSON5.",
            hint=str(exc),
            context={"path": str(config_path)},
        ) from exc

    if not isinstance(payload, dict):
        raise ConfigError(
            "Configuration document must be an object mapping target names to targets.",
            context={"path": str(config_path)},
        )

    targets = {
        name: _parse_target(name, value, path=config_path) for name, value in payload.items()
    }
    return ConfigDocument(path=config_path, targets=targets)


def write_template(path: str | Path) -> Path:
    """Write the starter document; an existing file is never overwritten."""
    target = Path(path)
    if target.is_dir():
        target = target / CONFIG_FILENAMES[0]
    if target.exists():
        raise ConfigError(
            "Configuration file already exists.",
            hint="Edit the existing file or remove it first.",
            context={"path": str(target)},
        )
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(template_document(), indent=2) + "\n", encoding="utf-8")
    return target


def template_document() -> dict[str, dict[str, Any]]:
    return {
        "base": {
            "version": "1.0.0",
            "fridaVersion": "17.5.1",
            "mode": "embedjs",
            "entry": "main.js",
            "xz": False,
        },
        "example-android-so": {
            "inherit": "base",
            "type": "android-so",
            "platform": "arm64-v8a",
        },
        "example-xposed": {
            "inherit": "base",
            "type": "xposed",
            "platform": "arm64-v8a",
            "packageName": "com.example.myxposedmodule",
            "name": "My Xposed Module",
            "scope": ["com.example.target"],
            "description": "Runs main.js inside the scoped apps.",
            "sign": False,
        },
    }


def _parse_target(name: str, value: Any, *, path: Path) -> RawTargetSpec:
    """Parse one target fragment.

    A malformed fragment does not fail the document: the first problem is kept
    in ``RawTargetSpec.error`` and raised when this target, or one inheriting
    from it, is resolved.
    """
    if not isinstance(value, dict):
        error = ConfigError(
            f"Target `{name}` must be an object.",
            context={"path": str(path), "target": name},
        )
        return RawTargetSpec(name=name, error=error)

    errors: list[ConfigError] = []
    inherit = value.get("inherit")
    if inherit is not None and not isinstance(inherit, str):
        errors.append(_field_type_error(name, "inherit", "a target name", path))
        inherit = None

    fields: dict[str, Any] = {}
    for key, item in value.items():
        if key == "inherit":
            continue
        if key not in KNOWN_FIELDS:
            warnings.warn(
                f"Target `{name}` has unrecognized field `{key}`; it is kept but not used.",
                UnknownFieldWarning,
                stacklevel=3,
            )
        elif item is None:
            pass
        elif key in STRING_FIELDS and not isinstance(item, str):
            errors.append(_field_type_error(name, key, "a string", path))
            continue
        elif key in BOOL_FIELDS and not isinstance(item, bool):
            errors.append(_field_type_error(name, key, "a boolean", path))
            continue
        elif key == "scope" and not _is_scope(item):
            errors.append(_field_type_error(name, key, "a string or a list of strings", path))
            continue
        fields[key] = item
    return RawTargetSpec(
        name=name,
        inherit=inherit,
        fields=fields,
        error=errors[0] if errors else None,
    )


def _is_scope(value: Any) -> bool:
    if isinstance(value, str):
        return True
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def _field_type_error(target: str, field_name: str, expected: str, path: Path) -> ConfigError:
    return ConfigError(
        f"Field `{field_name}` of target `{target}` must be {expected}.",
        context={"path": str(path), "target": target, "field": field_name},
    )
