#!/usr/bin/env python3
"""Shared repository file access with hard-fail semantics for primary inputs."""

from __future__ import annotations

from pathlib import Path


class HardFailError(RuntimeError):
    """Raised when a required input cannot be read and the run cannot continue."""


def display_path(path: Path, root: Path) -> str:
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return path.resolve().as_posix()


def resolve_repo_path(raw_path: str | Path, root: Path) -> Path:
    candidate = Path(raw_path)
    if not candidate.is_absolute():
        candidate = root / candidate
    return candidate.resolve()


def read_text_hard_fail(path: Path, *, artifact: str, root: Path) -> str:
    shown = display_path(path, root)
    if not path.exists():
        raise HardFailError(f"{artifact} file does not exist: {shown}")
    if not path.is_file():
        raise HardFailError(f"{artifact} path is not a file: {shown}")
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise HardFailError(f"{artifact} file is not valid UTF-8: {shown}") from exc
    except OSError as exc:
        raise HardFailError(f"unable to read {artifact} file {shown}: {exc}") from exc


class ServicesDirectory:
    """Read-only view of the per-service implementation files."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def exists(self, file_name: str) -> bool:
        return (self._path / file_name).is_file()

    def read_text(self, file_name: str) -> str:
        return (self._path / file_name).read_text(encoding="utf-8")
