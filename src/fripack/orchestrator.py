"""Build orchestration across configured targets."""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from fripack.builders import BuildContext, TargetBuilder, check_registry, default_builders
from fripack.cache import BinaryCache
from fripack.config import buildable_targets, resolve_target
from fripack.errors import (
    BuildCancelledError,
    FripackError,
    IOFailure,
    InternalBuildError,
    UnknownTargetError,
)
from fripack.models import BuildRequest, BuildResult, ConfigDocument, TargetType
from fripack.observability import StructuredLogger
from fripack.policy import DEFAULT_JOBS
from fripack.tools import ToolInvoker, ensure_tools


@dataclass(slots=True)
class BuildOrchestrator:
    document: ConfigDocument
    cache: BinaryCache
    invoker: ToolInvoker
    builders: Mapping[TargetType, TargetBuilder] = field(default_factory=default_builders)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    jobs: int = DEFAULT_JOBS
    _cancelled: threading.Event = field(default_factory=threading.Event, init=False, repr=False)

    def __post_init__(self) -> None:
        check_registry(self.builders)

    def build(self, names: Sequence[str] | None = None) -> dict[str, BuildResult]:
        """Build *names*, or every typed target when *names* is empty.

        Unknown names fail the whole call before any work starts; every other
        failure is recorded against its own target.
        """
        requested = self.requested_targets(names)
        if not requested:
            return {}

        context = BuildContext(cache=self.cache, invoker=self.invoker, logger=self.logger)
        workers = max(1, min(self.jobs, len(requested)))
        results: dict[str, BuildResult] = {}
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fripack-build") as pool:
            futures = {name: pool.submit(self._build_one, name, context) for name in requested}
            try:
                for name, future in futures.items():
                    results[name] = future.result()
            except BaseException:
                self.cancel()
                raise
        return results

    def requested_targets(self, names: Sequence[str] | None) -> tuple[str, ...]:
        if not names:
            return buildable_targets(self.document)
        unique = tuple(dict.fromkeys(names))
        unknown = [name for name in unique if name not in self.document.targets]
        if unknown:
            raise UnknownTargetError(unknown, available=self.document.names())
        return unique

    def cancel(self) -> None:
        """Stop starting new targets; targets already running finish normally."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _build_one(self, name: str, context: BuildContext) -> BuildResult:
        if self._cancelled.is_set():
            return self._failed(name, BuildCancelledError(name))

        try:
            config = resolve_target(self.document, name)
            builder = self.builders[config.target_type]
            ensure_tools(self.invoker, builder.required_tools(config))
            self.logger.log(
                operation="build_target_start",
                target=name,
                phase="build",
                builder=builder.name,
                message=f"Building {config.target_type} target {name}.",
            )
            artifact = builder.build(BuildRequest(config=config, entry=config.entry), context)
        except FripackError as exc:
            return self._failed(name, exc)
        except OSError as exc:
            error = IOFailure(
                "Filesystem error while building target.",
                context={"target": name, "path": str(exc.filename or ""), "error": str(exc)},
            )
            return self._failed(name, error)
        except Exception as exc:  # noqa: BLE001
            error = InternalBuildError(name, exc)
            error.__cause__ = exc
            return self._failed(name, error)

        self.logger.log(
            operation="build_target_complete",
            target=name,
            phase="build",
            builder=builder.name,
            message=f"Built {artifact}.",
        )
        return BuildResult.success(name, artifact)

    def _failed(self, name: str, error: FripackError) -> BuildResult:
        self.logger.log(
            operation="build_target_failed",
            target=name,
            phase="build",
            builder=None,
            message=error.message,
            level="error",
            extra=error.to_dict(),
        )
        return BuildResult.failure(name, error)


def exit_status(results: Mapping[str, BuildResult]) -> int:
    return 0 if all(result.ok for result in results.values()) else 1
