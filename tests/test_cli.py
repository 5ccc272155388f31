import json
from pathlib import Path

import pytest
from conftest import build_elf, seed_cache, write_config

from fripack.cli import main
from fripack.models import EngineBinaryKey, TargetType

SO = {"type": "android-so", "entry": "a.js", "fridaVersion": "17.5.1", "platform": "arm64-v8a"}
KEY = EngineBinaryKey("17.5.1", "arm64-v8a", TargetType.ANDROID_SO)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for variable in (
        "FRIPACK_CACHE_DIR",
        "FRIPACK_JOBS",
        "FRIPACK_OFFLINE",
        "FRIPACK_RELEASES_REPO",
        "FRIPACK_APKTOOL",
        "FRIPACK_APKSIGNER",
    ):
        monkeypatch.delenv(variable, raising=False)


@pytest.fixture
def home(tmp_path: Path) -> Path:
    home = tmp_path / "fripack-home"
    seed_cache(home / "cache", KEY, build_elf())
    return home


def test_init_writes_template_once(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["init", "--path", str(tmp_path)]) == 0
    assert (tmp_path / "fripack.json").is_file()
    assert "Created configuration file" in capsys.readouterr().out

    assert main(["init", "--path", str(tmp_path)]) == 2
    assert "already exists" in capsys.readouterr().err


def test_build_offline_from_cache(
    tmp_path: Path,
    home: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    config = write_config(tmp_path / "project", {"t": SO}, entry="console.log(1);")

    code = main(["--cache-dir", str(home), "build", "t", "--config", str(config), "--offline"])

    out = capsys.readouterr().out
    assert code == 0
    assert (tmp_path / "project" / "t-arm64-v8a.so").is_file()
    assert "✓ t:" in out
    assert "All 1 targets built successfully" in out


def test_build_discovers_config_from_working_directory(
    tmp_path: Path,
    home: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    project = tmp_path / "project"
    write_config(project, {"t": SO}, entry="console.log(1);")
    nested = project / "src"
    nested.mkdir()
    monkeypatch.chdir(nested)

    assert main(["--cache-dir", str(home), "build", "--offline", "--quiet"]) == 0
    assert (project / "t-arm64-v8a.so").is_file()


def test_build_failure_exits_non_zero_and_reports_code(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    config = write_config(tmp_path / "project", {"t": SO}, entry="console.log(1);")
    empty_home = tmp_path / "empty-home"

    code = main(
        ["--cache-dir", str(empty_home), "build", "--config", str(config), "--offline", "-q"]
    )

    out = capsys.readouterr().out
    assert code == 1
    assert "✗ t: [E_BINARY_ACQUISITION]" in out
    assert "1 of 1 targets failed" in out


def test_unknown_target_is_a_usage_error(
    tmp_path: Path,
    home: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    config = write_config(tmp_path / "project", {"t": SO}, entry="console.log(1);")

    code = main(["--cache-dir", str(home), "build", "ghost", "--config", str(config)])

    assert code == 2
    assert "Unknown target(s): ghost" in capsys.readouterr().err
    assert not (tmp_path / "project" / "t-arm64-v8a.so").exists()


def test_build_writes_json_log(tmp_path: Path, home: Path) -> None:
    config = write_config(tmp_path / "project", {"t": SO}, entry="console.log(1);")
    log_path = tmp_path / "logs" / "build.jsonl"

    code = main(
        [
            "--cache-dir",
            str(home),
            "build",
            "--config",
            str(config),
            "--offline",
            "--quiet",
            "--log-json",
            str(log_path),
        ]
    )

    records = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert code == 0
    assert records[-1]["operation"] == "build_target_complete"
    assert records[-1]["target"] == "t"


def test_cache_list_and_clear(home: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--cache-dir", str(home), "cache", "list"]) == 0
    listing = capsys.readouterr().out
    assert KEY.cache_filename in listing
    assert "1 files" in listing

    assert main(["--cache-dir", str(home), "cache", "clear"]) == 0
    assert "Removed 1 cached files" in capsys.readouterr().out
    assert list((home / "cache").iterdir()) == []


def test_cache_dir_from_environment(
    home: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setenv("FRIPACK_CACHE_DIR", str(home))

    assert main(["cache", "list"]) == 0
    assert str(home / "cache") in capsys.readouterr().out


def test_non_utf8_config_is_a_usage_error(
    tmp_path: Path,
    home: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    config = tmp_path / "fripack.json"
    config.write_bytes(b'{ "t": { "entry": "\xff.js" } }')

    code = main(["--cache-dir", str(home), "build", "--config", str(config), "--offline"])

    assert code == 2
    assert "not valid UTF-8" in capsys.readouterr().err


def test_report_lists_successes_and_failures_together(
    tmp_path: Path,
    home: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    document = {"good": SO, "bad": {**SO, "xz": "yes"}}
    config = write_config(tmp_path / "project", document, entry="console.log(1);")

    code = main(["--cache-dir", str(home), "build", "--config", str(config), "--offline", "-q"])

    out = capsys.readouterr().out
    assert code == 1
    assert "✓ good:" in out
    assert "✗ bad: [E_CONFIG]" in out
    assert "Field `xz` of target `bad` must be a boolean." in out
    assert "1 of 2 targets failed" in out
