"""Path helpers for resolving files relative to the project root."""

from __future__ import annotations

from pathlib import Path

ROOT_MARKERS = ("pyproject.toml", ".git")


def find_project_root(start: Path | None = None) -> Path:
    current = (start or Path(__file__)).resolve()
    if current.is_file():
        current = current.parent

    for candidate in [current, *current.parents]:
        if any((candidate / marker).exists() for marker in ROOT_MARKERS):
            return candidate
    raise RuntimeError("Unable to determine project root from {}".format(current))


def project_root() -> Path:
    """Source checkout root; the working directory when running from an installed wheel."""
    try:
        return find_project_root(Path(__file__))
    except RuntimeError:
        return Path.cwd()


def project_file(*parts: str) -> Path:
    return project_root().joinpath(*parts)
