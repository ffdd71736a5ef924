"""Optional tqdm progress bars over the media assets of a narration run."""

from __future__ import annotations

from typing import Iterable, TypeVar

from tqdm import tqdm

__all__ = ["configure", "progress_iter"]

T = TypeVar("T")

_show_progress = False


def configure(*, progress: bool) -> None:
    """Show or hide progress bars while a lab is narrated."""
    global _show_progress
    _show_progress = bool(progress)


def progress_iter(iterable: Iterable[T], *, desc: str | None = None, total: int | None = None) -> Iterable[T]:
    if _show_progress:
        return tqdm(iterable, desc=desc, total=total, unit="asset")
    return iterable
