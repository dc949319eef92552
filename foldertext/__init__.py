"""
foldertext — serialize a directory tree into one text document and back.

This package provides two independent halves sharing one line grammar:
- the encoder walks a directory and writes a flat, human-readable document,
- the decoder reads such a document, in memory or line by line, and rebuilds
  the tree under any destination directory.

Text files round-trip exactly. Binary files are recorded by reference to
their original absolute path and copied from there at decode time when that
path is still reachable; otherwise an empty placeholder is written.
"""

from __future__ import annotations

from .compare import trees_identical
from .config import DecoderConfig, EncoderConfig
from .decode import (
    DecodeStats,
    decode_file,
    decode_lines,
    decode_text,
    iter_document_lines,
    parse_document,
)
from .encode import EncodeStats, encode_to_file, encode_to_string, encode_tree, is_binary_content
from .errors import FatalInputError, FolderTextError
from .tree import document_tree, draw_document_tree

__all__ = [
    "DecodeStats",
    "DecoderConfig",
    "EncodeStats",
    "EncoderConfig",
    "FatalInputError",
    "FolderTextError",
    "decode_file",
    "decode_lines",
    "decode_text",
    "document_tree",
    "draw_document_tree",
    "encode_to_file",
    "encode_to_string",
    "encode_tree",
    "is_binary_content",
    "iter_document_lines",
    "parse_document",
    "trees_identical",
]
