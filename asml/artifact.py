"""Building and unpacking zip artifacts."""

from __future__ import annotations

import io
import shutil
import stat
import zipfile
from collections.abc import Iterable
from os import PathLike
from pathlib import Path


class ArtifactError(Exception):
    """Raised when an artifact cannot be written or read."""


def zip_files(
    files_in: Iterable[str | PathLike],
    file_out: str | PathLike,
    prefix_path: str | None = None,
    ro: bool = False,
) -> None:
    """Store ``files_in`` uncompressed in the zip archive ``file_out``.

    Each entry is named after the file's base name, preceded by
    ``prefix_path`` when given, and carries read-only (0o444) or full
    (0o777) unix permissions.
    """
    mode = 0o444 if ro else 0o777
    file_out = Path(file_out)
    try:
        archive = zipfile.ZipFile(file_out, "w", compression=zipfile.ZIP_STORED)
    except OSError as exc:
        raise ArtifactError(f"could not create zip archive: {exc}") from exc

    with archive:
        for path in map(Path, files_in):
            try:
                data = path.read_bytes()
            except OSError as exc:
                raise ArtifactError(f"could not read file at {path}: {exc}") from exc

            info = zipfile.ZipInfo(f"{prefix_path or ''}{path.name}")
            info.compress_type = zipfile.ZIP_STORED
            info.create_system = 3
            info.external_attr = (stat.S_IFREG | mode) << 16
            try:
                archive.writestr(info, data)
            except OSError as exc:
                raise ArtifactError(f"could not create zip archive: {exc}") from exc

    print(f"🗜 > Wrote zip artifact {file_out}")


def unzip_to(bytes_in: bytes, out_dir: str | PathLike) -> None:
    """Extract the ``terraform`` entry of a zip archive to the file ``out_dir``."""
    try:
        with zipfile.ZipFile(io.BytesIO(bytes_in)) as archive:
            with archive.open("terraform") as source, open(out_dir, "wb") as target:
                shutil.copyfileobj(source, target)
    except (zipfile.BadZipFile, KeyError, OSError) as exc:
        raise ArtifactError(str(exc)) from exc