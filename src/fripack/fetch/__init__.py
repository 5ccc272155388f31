"""Engine binary retrieval."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from fripack.models import EngineBinaryKey

from .http import PLATFORM_KEYWORDS, ReleaseAsset, ReleaseFetcher, match_asset


class Fetcher(Protocol):
    def fetch(self, key: EngineBinaryKey, destination: Path) -> Path:
        """Place the binary for *key* at *destination* and return it."""


__all__ = ["Fetcher", "PLATFORM_KEYWORDS", "ReleaseAsset", "ReleaseFetcher", "match_asset"]
