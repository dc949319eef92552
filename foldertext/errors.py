# foldertext/errors.py

"""Exceptions raised by the encoder and decoder."""

from __future__ import annotations


class FolderTextError(Exception):
    """Base class for all foldertext errors."""


class FatalInputError(FolderTextError):
    """
    The input of an encode or decode call cannot be used at all.

    Raised when the source root is missing or not a directory, or when the
    document is missing, unreadable or empty. Output flushed before the
    error is left in place.
    """
