import json
import lzma
from pathlib import Path

import pytest

from fripack.errors import IOFailure
from fripack.models import AndroidSoOptions, BuildRequest, ResolvedTargetConfig, TargetType
from fripack.packer import (
    FLAG_XZ,
    HEADER,
    MAGIC,
    PackagedScript,
    loader_document,
    pack,
    pack_bytes,
    read_entry,
    unpack,
)


def _request(entry: Path, *, xz: bool, configured_entry: str | None = None) -> BuildRequest:
    config = ResolvedTargetConfig(
        name="t",
        target_type=TargetType.ANDROID_SO,
        entry=entry,
        frida_version="17.5.1",
        platform="arm64-v8a",
        output_dir=entry.parent,
        options=AndroidSoOptions(),
        xz=xz,
        configured_entry=configured_entry,
    )
    return BuildRequest(config=config, entry=entry)


@pytest.mark.parametrize("compress", [False, True])
@pytest.mark.parametrize("data", [b"", b"console.log('hi');\n", b"\x00\xff" * 4096])
def test_packaged_script_recovers_original_bytes(data: bytes, compress: bool) -> None:
    packaged = unpack(pack_bytes(data, compress=compress).to_bytes())

    assert packaged.compressed is compress
    assert packaged.original_length == len(data)
    assert packaged.content() == data


def test_header_records_flags_and_lengths() -> None:
    data = b"send('x');" * 200
    blob = pack_bytes(data, compress=True).to_bytes()

    magic, version, flags, original, length = HEADER.unpack_from(blob)

    assert magic == MAGIC
    assert version == 1
    assert flags & FLAG_XZ
    assert original == len(data)
    assert length == len(blob) - HEADER.size
    assert length < len(data)
    assert blob[HEADER.size : HEADER.size + 6] == b"\xfd7zXZ\x00"


def test_uncompressed_payload_is_stored_verbatim() -> None:
    blob = pack_bytes(b"abc", compress=False).to_bytes()

    assert blob[HEADER.size :] == b"abc"
    assert HEADER.unpack_from(blob)[2] == 0


@pytest.mark.parametrize(
    "blob",
    [
        b"FRPK",
        HEADER.pack(b"NOPE", 1, 0, 3, 3) + b"abc",
        HEADER.pack(MAGIC, 9, 0, 3, 3) + b"abc",
        HEADER.pack(MAGIC, 1, 0, 10, 10) + b"short",
    ],
)
def test_unpack_rejects_malformed_blobs(blob: bytes) -> None:
    with pytest.raises(ValueError):
        unpack(blob)


def test_content_detects_length_mismatch() -> None:
    payload = lzma.compress(b"x", format=lzma.FORMAT_XZ)
    packaged = PackagedScript(compressed=True, original_length=99, payload=payload)

    with pytest.raises(ValueError):
        packaged.content()


def test_read_entry_wraps_os_errors(tmp_path: Path) -> None:
    with pytest.raises(IOFailure) as excinfo:
        read_entry(tmp_path / "missing.js")

    assert excinfo.value.code == "E_IO"
    assert excinfo.value.context["path"].endswith("missing.js")


def test_loader_document_carries_script_and_mode() -> None:
    document = json.loads(loader_document("src/a.js", "héllo".encode(), mode="embedjs"))

    assert document == {"mode": 1, "js_filepath": "src/a.js", "js_content": "héllo"}


@pytest.mark.parametrize("xz", [False, True])
def test_pack_wraps_entry_in_loader_document(tmp_path: Path, xz: bool) -> None:
    entry = tmp_path / "a.js"
    entry.write_text("Java.perform(() => {});", encoding="utf-8")

    packaged = pack(_request(entry, xz=xz))

    assert packaged.compressed is xz
    assert json.loads(packaged.content())["js_content"] == "Java.perform(() => {});"


def test_pack_embeds_entry_as_configured(tmp_path: Path) -> None:
    entry = tmp_path / "scripts" / "a.js"
    entry.parent.mkdir()
    entry.write_text("send(1);", encoding="utf-8")

    request = _request(entry, xz=False, configured_entry="scripts/a.js")
    configured = json.loads(pack(request).content())
    bare = json.loads(pack(_request(entry, xz=False)).content())

    assert configured["js_filepath"] == "scripts/a.js"
    assert bare["js_filepath"] == "a.js"
    assert str(tmp_path) not in json.dumps(configured)


def test_pack_rejects_non_utf8_entry(tmp_path: Path) -> None:
    entry = tmp_path / "a.js"
    entry.write_bytes(b"var s = '\xff\xfe';")

    with pytest.raises(IOFailure, match="not valid UTF-8") as excinfo:
        pack(_request(entry, xz=False))

    assert excinfo.value.context["path"] == str(entry)
