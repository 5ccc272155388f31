"""Configuration document loading and target resolution."""

from .loader import (
    CONFIG_FILENAMES,
    UnknownFieldWarning,
    find_config_file,
    load_document,
    parse_document,
    template_document,
    write_template,
)
from .resolve import (
    MINIMUM_FRIDA_VERSION,
    buildable_targets,
    flatten,
    inheritance_chain,
    resolve_target,
)

__all__ = [
    "CONFIG_FILENAMES",
    "MINIMUM_FRIDA_VERSION",
    "UnknownFieldWarning",
    "buildable_targets",
    "find_config_file",
    "flatten",
    "inheritance_chain",
    "load_document",
    "parse_document",
    "resolve_target",
    "template_document",
    "write_template",
]
