"""Helpers used while assembling multi-architecture images."""

from __future__ import annotations

import errno
import os
import shutil
from typing import List, Sequence, TypeVar

T = TypeVar("T")


def rename(source: str, destination: str) -> None:
    """Move a file like ``os.rename``, copying and deleting across devices.

    Any error other than a cross-device rename failure is raised unchanged.
    """
    try:
        os.rename(source, destination)
        return
    except OSError as exc:
        if exc.errno != errno.EXDEV:
            raise
    with open(source, "rb") as src, open(destination, "wb") as dst:
        shutil.copyfileobj(src, dst)
    os.remove(source)


def select_architectures(
    archs: Sequence[T], config_archs: Sequence[T], all_archs: Sequence[T]
) -> List[T]:
    """Choose the architectures to build.

    Explicitly requested architectures win; otherwise those named in the
    configuration are used; otherwise every known architecture.
    """
    if archs:
        return list(archs)
    if config_archs:
        return list(config_archs)
    return list(all_archs)