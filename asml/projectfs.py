"""Project directory layout."""

from __future__ import annotations

import os
from dataclasses import dataclass
from os import PathLike
from pathlib import Path

from asml.bom import ProjectManifest


@dataclass(frozen=True)
class ServiceDir:
    """A service's directory inside a project."""

    dir: Path

    def function_dir(self, name: str) -> Path:
        return self.dir / name


def _ensure_dir(path: Path) -> Path:
    if not path.exists():
        path.mkdir()
    if not path.is_dir():
        raise NotADirectoryError(f"not a directory: {path}")
    return path.resolve()


class Project:
    """An application's root directory and its ``services`` directory.

    Both directories are created when missing.
    """

    def __init__(self, name: str, project_path: str | PathLike | None = None):
        path = Path(project_path) if project_path is not None else Path(".") / name
        self._project_path = _ensure_dir(path)
        self._service_path = _ensure_dir(self._project_path / "services")

    def init(self, default_service_name: str, default_function_name: str) -> None:
        """Create the default function's source directories."""
        function_path = self._service_path / default_service_name / default_function_name
        for sub in ("src", ".cargo"):
            (function_path / sub).mkdir(parents=True, exist_ok=True)

    def service_dir(self, name: str) -> ServiceDir:
        return ServiceDir(self._service_path / name)

    def dir(self) -> Path:
        return self._project_path


def locate_asml_manifest(
    root: str | PathLike = ".",
) -> tuple[ProjectManifest, Path] | None:
    """Find ``assemblylift.toml`` below ``root``.

    Returns the parsed manifest and its directory, or None when there is none.
    """
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            if filename.lower() == "assemblylift.toml":
                parent = Path(dirpath).resolve()
                return ProjectManifest.read(parent), parent
    return None