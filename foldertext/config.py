# foldertext/config.py

"""
Per-call configuration for the encoder and decoder.

Both configurations are frozen dataclasses handed explicitly to each call;
there is no module-level mutable state.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

MIB = 1024 * 1024

DEFAULT_EXCLUDED_DIRS: tuple[str, ...] = ("node_modules",)

DEFAULT_BINARY_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".ico",
        ".png",
        ".jpg",
        ".jpeg",
        ".gif",
        ".svg",
        ".webp",
        ".avif",
        ".bmp",
        ".tiff",
        ".woff",
        ".woff2",
        ".ttf",
        ".eot",
        ".otf",
    }
)


@dataclass(frozen=True)
class EncoderConfig:
    """
    Options controlling how a directory tree is encoded.

    Attributes
    ----------
    excluded_dirs : tuple[str, ...]
        Directory names skipped entirely, wherever they appear.
    binary_extensions : frozenset[str]
        Lower-case extensions (with the leading dot) always treated as binary.
    max_text_size : int
        Files larger than this many bytes are recorded as large files.
    flush_threshold : int
        Number of buffered output lines above which the buffer is written out.
    sample_size : int
        Number of leading characters inspected by the binary heuristic.
    max_non_printable_ratio : float
        Share of control characters in the sample above which text is binary.
    progress_every_files, progress_every_dirs : int
        Progress is logged each time these many files/folders were emitted.
    """

    excluded_dirs: tuple[str, ...] = DEFAULT_EXCLUDED_DIRS
    binary_extensions: frozenset[str] = DEFAULT_BINARY_EXTENSIONS
    max_text_size: int = 10 * MIB
    flush_threshold: int = 100_000
    sample_size: int = 1000
    max_non_printable_ratio: float = 0.1
    progress_every_files: int = 100
    progress_every_dirs: int = 10

    def with_excluded(self, *names: str) -> EncoderConfig:
        """Return a copy that also excludes ``names``."""
        merged = list(self.excluded_dirs)
        merged.extend(n for n in names if n not in merged)
        return replace(self, excluded_dirs=tuple(merged))


@dataclass(frozen=True)
class DecoderConfig:
    """
    Options controlling how a document is turned back into a tree.

    ``streaming_threshold`` is the document size in bytes above which
    :func:`foldertext.decode.decode_file` reads the document line by line
    instead of loading it whole. ``icon_names`` lists file names whose empty
    zero-byte placeholders are reported for later population.
    """

    streaming_threshold: int = 100 * MIB
    icon_names: frozenset[str] = field(default_factory=lambda: frozenset({"favicon.ico"}))
    progress_every_lines: int = 5000
