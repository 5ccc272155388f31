"""Script payload packaging.

A packaged script is a fixed little-endian header followed by the payload::

    magic      4s   b"FRPK"
    version    H    format version (1)
    flags      H    bit 0: payload is an XZ stream
    original   I    length of the script before compression
    length     I    length of the payload that follows

The XZ container carries its own stream magic, so a loader can also detect
compression from the payload alone.
"""

from __future__ import annotations

import json
import lzma
import struct
from dataclasses import dataclass
from pathlib import Path

from fripack.errors import IOFailure
from fripack.models import BuildRequest

HEADER = struct.Struct("<4sHHII")
MAGIC = b"FRPK"
FORMAT_VERSION = 1
FLAG_XZ = 0x1
XZ_PRESET = 6

# Loader modes understood by the engine library's embedded-config reader.
LOADER_MODES = {"embedjs": 1}


@dataclass(frozen=True, slots=True)
class PackagedScript:
    compressed: bool
    original_length: int
    payload: bytes

    def to_bytes(self) -> bytes:
        flags = FLAG_XZ if self.compressed else 0
        header = HEADER.pack(MAGIC, FORMAT_VERSION, flags, self.original_length, len(self.payload))
        return header + self.payload

    def content(self) -> bytes:
        """Return the original, uncompressed bytes."""
        data = lzma.decompress(self.payload, format=lzma.FORMAT_XZ) if self.compressed else self.payload
        if len(data) != self.original_length:
            raise ValueError(
                f"Packaged script length mismatch: header says {self.original_length}, "
                f"payload holds {len(data)}."
            )
        return data


def pack_bytes(data: bytes, *, compress: bool) -> PackagedScript:
    payload = lzma.compress(data, format=lzma.FORMAT_XZ, preset=XZ_PRESET) if compress else data
    return PackagedScript(compressed=compress, original_length=len(data), payload=payload)


def unpack(blob: bytes) -> PackagedScript:
    """Parse a blob produced by :meth:`PackagedScript.to_bytes`."""
    if len(blob) < HEADER.size:
        raise ValueError("Packaged script is shorter than its header.")
    magic, version, flags, original_length, length = HEADER.unpack_from(blob)
    if magic != MAGIC:
        raise ValueError("Packaged script has an unknown magic value.")
    if version != FORMAT_VERSION:
        raise ValueError(f"Unsupported packaged script format version {version}.")
    payload = blob[HEADER.size : HEADER.size + length]
    if len(payload) != length:
        raise ValueError("Packaged script payload is truncated.")
    return PackagedScript(
        compressed=bool(flags & FLAG_XZ),
        original_length=original_length,
        payload=payload,
    )


def read_entry(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise IOFailure(
            "Cannot read entry script.",
            hint="Check the `entry` field; relative paths resolve against the config file.",
            context={"path": str(path), "error": exc.strerror or str(exc)},
        ) from exc


def loader_document(js_filepath: str, script: bytes, *, mode: str = "embedjs") -> bytes:
    """Embedded-config document the engine library reads at load time.

    *js_filepath* is the entry as configured, never the resolved local path.
    The script must be UTF-8.
    """
    document = {
        "mode": LOADER_MODES[mode],
        "js_filepath": js_filepath,
        "js_content": script.decode("utf-8"),
    }
    return json.dumps(document, ensure_ascii=False).encode("utf-8")


def pack(request: BuildRequest) -> PackagedScript:
    config = request.config
    script = read_entry(request.entry)
    js_filepath = config.configured_entry or request.entry.name
    try:
        document = loader_document(js_filepath, script, mode=config.mode)
    except UnicodeDecodeError as exc:
        raise IOFailure(
            "Entry script is not valid UTF-8.",
            hint="Re-encode the script as UTF-8 before building.",
            context={"path": str(request.entry), "error": str(exc)},
        ) from exc
    return pack_bytes(document, compress=config.xz)
