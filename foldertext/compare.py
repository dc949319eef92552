# foldertext/compare.py

"""Comparison of two directory trees, used to verify a round trip."""

from __future__ import annotations

import filecmp
from pathlib import Path


def trees_identical(left: Path | str, right: Path | str) -> bool:
    """
    Check whether two directory trees hold the same names and file bytes.

    Directories are compared recursively; regular files are compared by
    content, not by ``stat`` signature. Entries that exist on one side only,
    or that cannot be compared, make the trees differ.

    Parameters
    ----------
    left, right : pathlib.Path | str
        Roots of the trees to compare. Their own names are irrelevant.

    Returns
    -------
    bool
        ``True`` if both trees are identical.
    """
    comparison = filecmp.dircmp(left, right)

    if comparison.left_only or comparison.right_only or comparison.funny_files:
        return False
    if comparison.common_funny:
        return False

    _, mismatch, errors = filecmp.cmpfiles(
        left, right, comparison.common_files, shallow=False
    )
    if mismatch or errors:
        return False

    return all(
        trees_identical(Path(left) / name, Path(right) / name)
        for name in comparison.common_dirs
    )
