"""Command-line entry point.

Usage:
    fripack init [--path DIR]
    fripack build [TARGET ...] [--config PATH] [--jobs N] [--offline]
    fripack cache list|clear
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path
from typing import Any

from fripack.cache import BinaryCache
from fripack.config import find_config_file, load_document, write_template
from fripack.errors import FripackError
from fripack.fetch import ReleaseFetcher
from fripack.models import BuildResult
from fripack.observability import StructuredLogger
from fripack.orchestrator import BuildOrchestrator, exit_status
from fripack.policy import Settings
from fripack.tools import SubprocessInvoker

EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def cmd_init(args: argparse.Namespace, settings: Settings) -> int:
    path = write_template(args.path)
    print(f"✓ Created configuration file: {path}")
    return 0


def cmd_build(args: argparse.Namespace, settings: Settings) -> int:
    config_path = Path(args.config) if args.config else find_config_file(Path.cwd())
    print(f"→ Using configuration: {config_path}")
    document = load_document(config_path)

    logger = StructuredLogger(echo=None if args.quiet else _echo)
    fetcher = ReleaseFetcher(
        repository=settings.releases_repo,
        verify_digest=settings.policy.require_integrity,
    )
    cache = BinaryCache(
        root=settings.binaries_dir,
        fetcher=fetcher,
        policy=settings.policy,
        logger=logger,
    )
    orchestrator = BuildOrchestrator(
        document=document,
        cache=cache,
        invoker=SubprocessInvoker(overrides=settings.tool_overrides),
        logger=logger,
        jobs=settings.jobs,
    )
    try:
        results = orchestrator.build(args.targets)
    except KeyboardInterrupt:
        print("✗ Interrupted; targets not yet started were cancelled.", file=sys.stderr)
        return EXIT_INTERRUPTED
    finally:
        if args.log_json:
            logger.to_json_lines(args.log_json)

    if not results:
        print("No targets declare a `type`; nothing to build.")
        return 0
    _report(results)
    return exit_status(results)


def cmd_cache(args: argparse.Namespace, settings: Settings) -> int:
    cache = BinaryCache(root=settings.binaries_dir)
    if args.action == "clear":
        removed = cache.clear()
        print(f"✓ Removed {removed} cached files" if removed else "No cached files to remove.")
        return 0

    stats = cache.stats()
    print(f"Cache directory: {cache.root}")
    for path in stats.files:
        print(f"  {path.name}  {path.stat().st_size} bytes")
    print(f"{stats.file_count} files, {stats.total_size} bytes")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fripack",
        description="Build Frida-based packages from a fripack.json configuration.",
    )
    parser.add_argument("--cache-dir", help="Engine binary cache directory (default ~/.fripack)")
    sub = parser.add_subparsers(dest="command", required=True)

    init_p = sub.add_parser("init", help="Create a starter fripack.json")
    init_p.add_argument("--path", default=".", help="Directory or file to create")

    build_p = sub.add_parser("build", help="Build targets (all typed targets by default)")
    build_p.add_argument("targets", nargs="*", help="Target names to build")
    build_p.add_argument("--config", help="Configuration file (default: nearest fripack.json)")
    build_p.add_argument("--jobs", "-j", type=int, help="Targets built in parallel")
    build_p.add_argument("--offline", action="store_true", help="Never download engine binaries")
    build_p.add_argument("--log-json", help="Write structured build records to this file")
    build_p.add_argument("--quiet", "-q", action="store_true", help="Only print the summary")

    cache_p = sub.add_parser("cache", help="Inspect or clear the engine binary cache")
    cache_p.add_argument("action", choices=("list", "clear"))
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = _settings(args)
    handlers = {"init": cmd_init, "build": cmd_build, "cache": cmd_cache}
    try:
        return handlers[args.command](args, settings)
    except FripackError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return EXIT_USAGE


def _settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    if args.cache_dir:
        settings = replace(settings, cache_dir=Path(args.cache_dir).expanduser())
    if getattr(args, "jobs", None):
        settings = replace(settings, jobs=max(1, args.jobs))
    if getattr(args, "offline", False):
        settings = replace(settings, policy=replace(settings.policy, network_mode="offline"))
    return settings


def _echo(record: dict[str, Any]) -> None:
    target = f"[{record['target']}] " if record.get("target") else ""
    marker = "✗" if record.get("level") == "error" else "→"
    print(f"{marker} {target}{record['message']}")


def _report(results: dict[str, BuildResult]) -> None:
    print()
    for name, result in results.items():
        error = result.error
        if error is None:
            print(f"✓ {name}: {result.artifact}")
            continue
        print(f"✗ {name}: [{error.code}]")
        for line in str(error).splitlines():
            print(f"    {line}")
    failed = sum(1 for result in results.values() if not result.ok)
    if failed:
        print(f"\n{failed} of {len(results)} targets failed.")
    else:
        print(f"\n✓ All {len(results)} targets built successfully!")
