"""Structured logging and observability helpers."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

Record = dict[str, Any]


@dataclass(slots=True)
class StructuredLogger:
    records: list[Record] = field(default_factory=list)
    echo: Callable[[Record], None] | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def log(
        self,
        *,
        operation: str,
        target: str | None,
        phase: str | None,
        builder: str | None,
        message: str,
        level: str = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        record: Record = {
            "level": level,
            "operation": operation,
            "target": target,
            "phase": phase,
            "builder": builder,
            "message": message,
        }
        if extra is not None:
            record["extra"] = extra
        with self._lock:
            self.records.append(record)
        if self.echo is not None:
            self.echo(record)

    def records_for_target(self, target: str) -> list[Record]:
        with self._lock:
            return [record for record in self.records if record.get("target") == target]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            lines = [json.dumps(record, sort_keys=True, default=str) for record in self.records]
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return output_path
