"""Atomic placement of finished artifacts into output directories."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

from fripack.errors import IOFailure


def materialize_artifact(
    destination: Path,
    *,
    payload: bytes | None = None,
    source: Path | None = None,
) -> Path:
    """Write *payload* (or copy *source*) to *destination* all-or-nothing.

    Content goes to a hidden temporary file next to *destination* and is
    renamed over it once complete, so readers never observe a partial file
    and concurrent writers resolve as last-writer-wins.
    """
    if (payload is None) == (source is None):
        raise ValueError("materialize_artifact() needs exactly one of payload or source.")

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{destination.name}.", dir=destination.parent)
    except OSError as exc:
        raise _io_failure(destination, exc) from exc

    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            if payload is not None:
                handle.write(payload)
            else:
                with source.open("rb") as reader:  # type: ignore[union-attr]
                    shutil.copyfileobj(reader, handle)
        os.chmod(temp_path, 0o644)
        os.replace(temp_path, destination)
    except OSError as exc:
        raise _io_failure(destination, exc) from exc
    finally:
        temp_path.unlink(missing_ok=True)
    return destination


def _io_failure(destination: Path, exc: OSError) -> IOFailure:
    return IOFailure(
        "Cannot write build artifact.",
        hint="Check that `outputDir` exists or can be created and is writable.",
        context={"path": str(destination), "error": exc.strerror or str(exc)},
    )
