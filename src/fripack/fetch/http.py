"""Release-asset lookup and integrity-checked download of engine binaries."""

from __future__ import annotations

import hashlib
import http.client
import json
import os
import re
import tempfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.error import HTTPError
from urllib.request import Request, urlopen

from fripack.errors import BinaryNotFoundError, DownloadError
from fripack.models import EngineBinaryKey, TargetType
from fripack.policy import DEFAULT_RELEASES_REPO

USER_AGENT = "fripack-downloader"
CHUNK_SIZE = 1 << 16

# Asset-name tokens for each platform, most specific first.
PLATFORM_KEYWORDS: Mapping[str, tuple[str, ...]] = {
    "arm64-v8a": ("android-arm64", "arm64"),
    "armeabi-v7a": ("android-arm", "arm"),
    "x86": ("android-x86", "x86"),
    "x86_64": ("android-x86_64", "x86_64"),
    "linux-x86_64": ("linux-x86_64",),
}
_NON_ANDROID_TOKENS = ("linux", "windows", "macos", "darwin", "ios")


@dataclass(frozen=True, slots=True)
class ReleaseAsset:
    name: str
    download_url: str
    digest: str | None = None


def match_asset(assets: Sequence[ReleaseAsset], key: EngineBinaryKey) -> ReleaseAsset | None:
    """Pick the asset built for exactly ``key``'s version, platform and type."""
    extension = ".apk" if key.target_type is TargetType.XPOSED else ".so"
    candidates = [
        asset
        for asset in assets
        if asset.name.lower().endswith(extension)
        and _has_version(asset.name.lower(), key.frida_version.lower())
    ]
    if key.target_type is TargetType.XPOSED:
        candidates = [asset for asset in candidates if _has_token(asset.name.lower(), "xposed")]
    if key.platform != "linux-x86_64":
        candidates = [
            asset
            for asset in candidates
            if not any(_has_token(asset.name.lower(), token) for token in _NON_ANDROID_TOKENS)
        ]

    for keyword in PLATFORM_KEYWORDS.get(key.platform, (key.platform,)):
        for asset in candidates:
            if _has_token(asset.name.lower(), keyword):
                return asset

    if key.target_type is TargetType.XPOSED:
        # An ABI-neutral template serves every platform.
        all_keywords = {keyword for group in PLATFORM_KEYWORDS.values() for keyword in group}
        for asset in candidates:
            if not any(_has_token(asset.name.lower(), keyword) for keyword in all_keywords):
                return asset
    return None


@dataclass(slots=True)
class ReleaseFetcher:
    repository: str = DEFAULT_RELEASES_REPO
    api_url: str = "https://api.github.com"
    timeout: float = 60.0
    verify_digest: bool = True

    def release_assets(self, frida_version: str) -> list[ReleaseAsset]:
        url = f"{self.api_url}/repos/{self.repository}/releases/tags/{frida_version}"
        request = self._request(url, accept="application/vnd.github+json")
        try:
            with urlopen(request, timeout=self.timeout) as response:  # noqa: S310 - https API endpoint
                release = json.loads(response.read().decode("utf-8"))
        except HTTPError as exc:
            if exc.code == 404:
                raise BinaryNotFoundError(
                    f"No engine release found for fridaVersion {frida_version}.",
                    hint="Check `fridaVersion` against the published fripack-inject releases.",
                    context={"repository": self.repository, "fridaVersion": frida_version},
                ) from exc
            raise DownloadError(
                f"Failed to fetch release metadata: HTTP {exc.code}.",
                context={"url": url},
            ) from exc
        except (OSError, http.client.HTTPException, ValueError) as exc:
            raise DownloadError(
                "Failed to fetch release metadata.",
                hint="Check network access or build with an on-disk cached binary.",
                context={"url": url, "error": str(exc)},
            ) from exc
        return _parse_assets(release)

    def fetch(self, key: EngineBinaryKey, destination: Path) -> Path:
        """Download the binary for *key* to *destination* and return it."""
        assets = self.release_assets(key.frida_version)
        asset = match_asset(assets, key)
        if asset is None:
            raise BinaryNotFoundError(
                "No engine binary matches the requested version and platform.",
                hint="Adjust `fridaVersion`/`platform`; nearby versions are never substituted.",
                context={**key.describe(), "available": ",".join(item.name for item in assets)},
            )
        return self.download(asset, destination)

    def download(self, asset: ReleaseAsset, destination: Path) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)
        digest = hashlib.sha256()
        fd, temp_name = tempfile.mkstemp(prefix=f".{destination.name}.", dir=destination.parent)
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                request = self._request(asset.download_url)
                with urlopen(request, timeout=self.timeout) as response:  # noqa: S310 - release asset URL
                    while chunk := response.read(CHUNK_SIZE):
                        digest.update(chunk)
                        handle.write(chunk)
            self._check_digest(asset, digest.hexdigest())
            os.replace(temp_path, destination)
        except (OSError, http.client.HTTPException, ValueError) as exc:
            raise DownloadError(
                f"Failed to download {asset.name}.",
                context={"url": asset.download_url, "error": str(exc)},
            ) from exc
        finally:
            temp_path.unlink(missing_ok=True)
        return destination

    def _check_digest(self, asset: ReleaseAsset, actual: str) -> None:
        if not self.verify_digest or not asset.digest or not asset.digest.startswith("sha256:"):
            return
        expected = asset.digest.removeprefix("sha256:")
        if expected.lower() != actual:
            raise DownloadError(
                "Downloaded engine binary hash mismatch.",
                hint="Retry the download; the release asset may have been replaced.",
                context={"asset": asset.name, "expected": expected, "actual": actual},
            )

    def _request(self, url: str, *, accept: str | None = None) -> Request:
        headers = {"User-Agent": USER_AGENT}
        if accept:
            headers["Accept"] = accept
        return Request(url, headers=headers)


def _parse_assets(release: Any) -> list[ReleaseAsset]:
    raw_assets = release.get("assets") if isinstance(release, dict) else None
    if not isinstance(raw_assets, list):
        raise DownloadError("Release metadata has no asset list.")
    assets: list[ReleaseAsset] = []
    for item in raw_assets:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        url = item.get("browser_download_url")
        if isinstance(name, str) and isinstance(url, str):
            digest = item.get("digest")
            if not isinstance(digest, str):
                digest = None
            assets.append(ReleaseAsset(name=name, download_url=url, digest=digest))
    return assets


def _has_token(name: str, token: str) -> bool:
    return re.search(rf"(?<![a-z0-9_]){re.escape(token)}(?![a-z0-9_])", name) is not None


def _has_version(name: str, version: str) -> bool:
    return re.search(rf"(?<![\d.]){re.escape(version)}(?!\.?\d)", name) is not None
