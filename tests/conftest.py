"""Shared test fixtures."""

from __future__ import annotations

import json
import struct
import threading
import zipfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from fripack.cache import BinaryCache
from fripack.errors import BinaryNotFoundError, ToolNotFoundError
from fripack.models import EngineBinaryKey, TargetType
from fripack.observability import StructuredLogger
from fripack.tools import ToolResult

EM_386 = 3
EM_ARM = 40
EM_X86_64 = 62
EM_AARCH64 = 183

MACHINES = {
    "arm64-v8a": EM_AARCH64,
    "armeabi-v7a": EM_ARM,
    "x86": EM_386,
    "x86_64": EM_X86_64,
}

TEMPLATE_MANIFEST = """<?xml version="1.0" encoding="utf-8" standalone="no"?>
<manifest xmlns:android="http://schemas.android.com/apk/res/android" package="io.fripack.template">
    <application android:label="fripack template">
        <meta-data android:name="xposedmodule" android:value="true"/>
        <meta-data android:name="xposedminversion" android:value="82"/>
        <meta-data android:name="xposeddescription" android:value="template"/>
    </application>
</manifest>
"""


def build_elf(machine: int = EM_AARCH64, *, with_record: bool = True) -> bytes:
    """Return a minimal ELF64 shared object carrying an empty embedded-config record."""
    shstrtab = b"\x00.shstrtab\x00.data\x00"
    record = struct.pack("<iiiii?", 0x0D000721, 0x1F8A4E2B, 1, 0, 0, False)
    data = b"\x00" * 16 + (record if with_record else b"\x00" * len(record)) + b"\x00" * 11

    shstrtab_offset = 64
    data_offset = shstrtab_offset + len(shstrtab)
    section_offset = (data_offset + len(data) + 7) // 8 * 8

    ident = b"\x7fELF" + bytes([2, 1, 1, 0]) + b"\x00" * 8
    header = ident + struct.pack(
        "<HHIQQQIHHHHHH", 3, machine, 1, 0, 0, section_offset, 0, 64, 56, 0, 64, 3, 1
    )
    body = header + shstrtab + data
    body += b"\x00" * (section_offset - len(body))

    null_section = b"\x00" * 64
    shstrtab_section = struct.pack(
        "<IIQQQQIIQQ", 1, 3, 0, 0, shstrtab_offset, len(shstrtab), 0, 0, 1, 0
    )
    data_section = struct.pack("<IIQQQQIIQQ", 11, 1, 3, 0, data_offset, len(data), 0, 0, 1, 0)
    return body + null_section + shstrtab_section + data_section


def build_template_apk(path: Path) -> Path:
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("AndroidManifest.xml", TEMPLATE_MANIFEST)
        archive.writestr("classes.dex", b"dex\n035\x00")
    return path


def seed_cache(root: Path, key: EngineBinaryKey, payload: bytes) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    path = root / key.cache_filename
    path.write_bytes(payload)
    return path


def write_config(directory: Path, document: dict[str, Any], *, entry: str | None = None) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    if entry is not None:
        (directory / "a.js").write_text(entry, encoding="utf-8")
    path = directory / "fripack.json"
    path.write_text(json.dumps(document, indent=2), encoding="utf-8")
    return path


@dataclass
class FakeFetcher:
    """Fetcher that serves bytes from memory and counts calls."""

    payloads: dict[EngineBinaryKey, bytes] = field(default_factory=dict)
    gate: threading.Event | None = None
    started: threading.Event = field(default_factory=threading.Event)
    calls: list[EngineBinaryKey] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def fetch(self, key: EngineBinaryKey, destination: Path) -> Path:
        with self._lock:
            self.calls.append(key)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if key not in self.payloads:
            raise BinaryNotFoundError("no such asset", context=key.describe())
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(self.payloads[key])
        return destination


@dataclass
class FakeInvoker:
    """Scripted stand-in for apktool/apksigner; no process is ever spawned."""

    available: set[str] = field(default_factory=lambda: {"apktool", "apksigner"})
    returncodes: dict[str, int] = field(default_factory=dict)
    stderr: str = "boom"
    calls: list[tuple[str, tuple[str, ...]]] = field(default_factory=list)
    resolved: list[str] = field(default_factory=list)
    on_call: Callable[[str, Sequence[str]], None] | None = None

    def resolve(self, tool: str) -> str:
        self.resolved.append(tool)
        if tool not in self.available:
            raise ToolNotFoundError(tool)
        return f"/usr/bin/{tool}"

    def run(self, tool: str, args: Sequence[str], *, cwd: Path | None = None) -> ToolResult:
        executable = self.resolve(tool)
        self.calls.append((tool, tuple(args)))
        if self.on_call is not None:
            self.on_call(tool, args)
        subcommand = args[0]
        returncode = self.returncodes.get(subcommand, 0)
        argv = (executable, *args)
        if returncode != 0:
            return ToolResult(returncode=returncode, stdout="", stderr=self.stderr, argv=argv)

        if tool == "apktool" and subcommand == "d":
            self._decode(Path(args[args.index("-o") + 1]), Path(args[-1]))
        elif tool == "apktool" and subcommand == "b":
            self._build(Path(args[args.index("-o") + 1]), Path(args[-1]))
        elif tool == "apksigner":
            with zipfile.ZipFile(args[-1], "a") as archive:
                archive.writestr("META-INF/FRIPACK.SF", "signed")
        return ToolResult(returncode=0, stdout="ok", stderr="", argv=argv)

    def tool_calls(self, tool: str) -> list[tuple[str, ...]]:
        return [args for name, args in self.calls if name == tool]

    @staticmethod
    def _decode(tree: Path, apk: Path) -> None:
        tree.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(apk) as archive:
            archive.extractall(tree)
        (tree / "apktool.yml").write_text("version: 2.9.3\n", encoding="utf-8")

    @staticmethod
    def _build(output: Path, tree: Path) -> None:
        with zipfile.ZipFile(output, "w") as archive:
            for path in sorted(tree.rglob("*")):
                if path.is_file():
                    archive.write(path, path.relative_to(tree).as_posix())


@pytest.fixture
def elf_template() -> Callable[..., bytes]:
    return build_elf


@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger()


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
    return tmp_path / "binaries"


@pytest.fixture
def seeded_cache(cache_root: Path, tmp_path: Path, logger: StructuredLogger) -> BinaryCache:
    """Cache holding arm64 17.5.1 engine library and module template; downloads fail."""
    seed_cache(
        cache_root,
        EngineBinaryKey("17.5.1", "arm64-v8a", TargetType.ANDROID_SO),
        build_elf(EM_AARCH64),
    )
    template = build_template_apk(tmp_path / "template.apk")
    seed_cache(
        cache_root,
        EngineBinaryKey("17.5.1", "arm64-v8a", TargetType.XPOSED),
        template.read_bytes(),
    )
    return BinaryCache(root=cache_root, fetcher=FakeFetcher(), logger=logger)


@pytest.fixture
def invoker() -> FakeInvoker:
    return FakeInvoker()
