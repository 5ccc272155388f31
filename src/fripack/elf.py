"""Embedding packaged scripts into engine shared-object templates.

The engine library reserves an embedded-config record, located by two magic
words, that its loader reads at start-up::

    magic1  i32   0x0d000721
    magic2  i32   0x1f8a4e2b
    version i32   1
    size    i32   original (uncompressed) script length
    offset  i32   payload offset, relative to the record itself
    xz      bool  payload is an XZ stream

The packaged script (header + payload) is appended to the file and described
by a non-allocated ``.fripack_config`` section. The record is patched to point
at the payload. The record offset is a file offset, so an artifact must not be
rewritten after it is built.
"""

from __future__ import annotations

import io
import struct

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile

from fripack.errors import BinaryAcquisitionError
from fripack.models import PLATFORM_MACHINES
from fripack.packer import HEADER, PackagedScript, unpack

RECORD = struct.Struct("<iiiii?")
RECORD_MAGIC1 = 0x0D000721
RECORD_MAGIC2 = 0x1F8A4E2B
RECORD_VERSION = 1
PAYLOAD_ALIGNMENT = 16
SECTION_NAME = ".fripack_config"

SHT_PROGBITS = 1

_RECORD_PREFIX = struct.pack("<ii", RECORD_MAGIC1, RECORD_MAGIC2)

# Section header layout and the file offsets of e_shoff/e_shnum, per ELF class.
_SECTION_HEADER = {32: "IIIIIIIIII", 64: "IIQQQQIIQQ"}
_SHOFF_FIELD = {32: (0x20, "I"), 64: (0x28, "Q")}
_SHNUM_FIELD = {32: (0x30, "H"), 64: (0x3C, "H")}


def open_elf(data: bytes) -> ELFFile:
    try:
        return ELFFile(io.BytesIO(data))
    except ELFError as exc:
        raise BinaryAcquisitionError(
            "Engine binary is not a valid ELF file.",
            hint="Clear the binary cache or fix `overridePrebuildFile`.",
            context={"error": str(exc)},
        ) from exc


def machine_of(data: bytes) -> str:
    return str(open_elf(data)["e_machine"])


def find_record(data: bytes) -> int | None:
    offset = data.find(_RECORD_PREFIX)
    if offset < 0 or offset + RECORD.size > len(data):
        return None
    return offset


def embed(template: bytes, packaged: PackagedScript, *, platform: str) -> bytes:
    """Return a copy of *template* carrying *packaged* in its data slot."""
    elf = open_elf(template)
    expected = PLATFORM_MACHINES.get(platform)
    actual = str(elf["e_machine"])
    if expected is not None and actual != expected:
        raise BinaryAcquisitionError(
            "Engine binary architecture does not match the requested platform.",
            hint="Use an engine binary built for the target's platform.",
            context={"platform": platform, "expected": expected, "actual": actual},
        )

    record_offset = find_record(template)
    if record_offset is None:
        raise BinaryAcquisitionError(
            "Engine binary has no embedded-config record.",
            hint="The binary is not a fripack-inject build; check `overridePrebuildFile`.",
            context={"platform": platform},
        )

    blob = packaged.to_bytes()
    blob_offset = _align(len(template), PAYLOAD_ALIGNMENT)
    output = bytearray(template)
    output.extend(b"\x00" * (blob_offset - len(template)))
    output.extend(blob)
    if 0 < elf["e_shstrndx"] < elf["e_shnum"]:
        _append_section(output, elf, template, offset=blob_offset, size=len(blob))

    payload_offset = blob_offset + HEADER.size
    RECORD.pack_into(
        output,
        record_offset,
        RECORD_MAGIC1,
        RECORD_MAGIC2,
        RECORD_VERSION,
        packaged.original_length,
        payload_offset - record_offset,
        packaged.compressed,
    )
    return bytes(output)


def _append_section(
    output: bytearray,
    elf: ELFFile,
    template: bytes,
    *,
    offset: int,
    size: int,
) -> None:
    """Append a copy of the section header table with one extra section.

    The section-name string table is copied to the end of the file with the
    new name added, and the ELF header is pointed at the new table.
    """
    endian = "<" if elf.little_endian else ">"
    section_header = struct.Struct(endian + _SECTION_HEADER[elf.elfclass])
    entry_size = elf["e_shentsize"]
    count = elf["e_shnum"]
    names_index = elf["e_shstrndx"]

    names = elf.get_section(names_index)
    name_table = template[names["sh_offset"] : names["sh_offset"] + names["sh_size"]]
    name_offset = len(name_table)
    name_table += SECTION_NAME.encode("ascii") + b"\x00"
    names_offset = len(output)
    output.extend(name_table)

    table_offset = _align(len(output), 8)
    output.extend(b"\x00" * (table_offset - len(output)))
    for index in range(count):
        start = elf["e_shoff"] + index * entry_size
        header = template[start : start + entry_size]
        if index == names_index:
            fields = list(section_header.unpack_from(header))
            fields[4], fields[5] = names_offset, len(name_table)
            header = section_header.pack(*fields) + header[section_header.size :]
        output.extend(header)
    new_header = section_header.pack(
        name_offset, SHT_PROGBITS, 0, 0, offset, size, 0, 0, PAYLOAD_ALIGNMENT, 0
    )
    output.extend(new_header.ljust(entry_size, b"\x00"))

    position, fmt = _SHOFF_FIELD[elf.elfclass]
    struct.pack_into(endian + fmt, output, position, table_offset)
    position, fmt = _SHNUM_FIELD[elf.elfclass]
    struct.pack_into(endian + fmt, output, position, count + 1)


def read_embedded(data: bytes) -> PackagedScript:
    """Recover the packaged script from an artifact produced by :func:`embed`."""
    record_offset = find_record(data)
    if record_offset is None:
        raise ValueError("No embedded-config record found.")
    _, _, _, size, relative, compressed = RECORD.unpack_from(data, record_offset)
    blob_offset = record_offset + relative - HEADER.size
    if relative <= 0 or blob_offset < 0:
        raise ValueError("Embedded-config record does not point at a payload.")
    packaged = unpack(data[blob_offset:])
    if packaged.compressed != compressed or packaged.original_length != size:
        raise ValueError("Embedded-config record disagrees with the payload header.")
    return packaged


def _align(value: int, alignment: int) -> int:
    return (value + alignment - 1) // alignment * alignment
