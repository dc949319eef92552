# foldertext/encode.py

"""
Directory tree to text document encoding.

This module walks a directory tree and writes it out as a single
line-oriented document (see :mod:`foldertext.grammar`). It is the inverse of
:mod:`foldertext.decode` but shares no code with it beyond the grammar.

Features include:
- depth-first traversal over an explicit work stack, in listing order,
- directory-name exclusion and symlink cycle protection,
- extension-, size- and content-based classification of files,
- bounded memory through periodic flushing of the output buffer,
- per-node error recording that never interrupts the traversal.

Entries are visited in the order ``os.listdir`` returns them. That order is
stable for an unchanged directory on one filesystem but is not sorted, so two
machines may produce documents listing the same tree differently.
"""

from __future__ import annotations

import io
import os
import stat
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from enum import Enum
from typing import Callable, Iterable, NamedTuple, TextIO

from foldertext import grammar
from foldertext.config import EncoderConfig
from foldertext.errors import FatalInputError
from foldertext.grammar import ContentTag
from foldertext.log import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EncodeStats:
    """Counters accumulated by one encode call."""

    files: int = 0
    directories: int = 0
    bytes: int = 0
    excluded: int = 0
    errors: int = 0
    flushes: int = 0


class NodeKind(Enum):
    DIRECTORY = "directory"
    FILE = "file"
    OTHER = "other"


class FilesystemNode(NamedTuple):
    """
    An entry of the tree being encoded.

    Nodes are pushed on the traversal stack with only their paths; ``kind``
    and ``size`` are filled in by :func:`_stat_node` when the node is visited.
    """

    path: Path
    relative: str
    kind: NodeKind | None = None
    size: int = 0


@dataclass
class EncodingSession:
    """
    Mutable state owned by a single encode call.

    The session buffers output lines and writes them to ``sink`` once more
    than ``flush_threshold`` lines are pending.
    """

    sink: TextIO
    config: EncoderConfig
    visited: set[str] = field(default_factory=set)
    buffer: list[str] = field(default_factory=list)
    stats: EncodeStats = field(default_factory=EncodeStats)

    def emit(self, lines: Iterable[str]) -> None:
        self.buffer.extend(lines)

    def maybe_flush(self) -> None:
        if len(self.buffer) <= self.config.flush_threshold:
            return
        try:
            self.sink.write("\n".join(self.buffer) + "\n")
        except OSError as exc:
            # Keep the buffer; the next flush retries the same lines.
            self.stats.errors += 1
            logger.error("encode.flush_failed", error=str(exc), pending=len(self.buffer))
            return
        self.stats.flushes += 1
        logger.info(
            "encode.flushed",
            lines=len(self.buffer),
            files=self.stats.files,
            directories=self.stats.directories,
        )
        self.buffer.clear()

    def finish(self) -> None:
        self.emit([grammar.format_footer()])
        try:
            self.sink.write("\n".join(self.buffer))
        except OSError as exc:
            raise FatalInputError(f"Failed to write output: {exc}") from exc
        self.buffer.clear()

    def log_progress(self) -> None:
        logger.info(
            "encode.progress",
            files=self.stats.files,
            directories=self.stats.directories,
            megabytes=round(self.stats.bytes / (1024 * 1024), 2),
        )


class _Root(NamedTuple):
    path: Path
    entries: list[str]


def is_binary_content(text: str, *, sample_size: int = 1000, max_ratio: float = 0.1) -> bool:
    """
    Heuristically determine whether decoded text is really binary data.

    The text is considered binary if it contains a NUL character anywhere,
    or if more than ``max_ratio`` of its first ``sample_size`` characters are
    control characters. Tab, line feed and carriage return are not counted;
    DEL (127) is.

    Parameters
    ----------
    text : str
        The decoded file content.
    sample_size : int, default=1000
        Number of leading characters inspected for control characters.
    max_ratio : float, default=0.1
        Threshold share of control characters.

    Returns
    -------
    bool
        ``True`` if the content should be treated as binary.
    """
    if "\x00" in text:
        return True

    sample = text[:sample_size]
    non_printable = sum(
        1 for ch in sample if (ord(ch) < 32 and ch not in "\t\n\r") or ord(ch) == 127
    )
    return non_printable > len(sample) * max_ratio


def file_content_lines(path: Path, size: int, config: EncoderConfig) -> list[str]:
    """
    Classify a regular file and return the lines of its file block body.

    Classification is evaluated in this order:

    1. empty file with a binary extension: a zero-byte binary tag,
    2. binary extension: a reference to the original absolute path,
    3. larger than ``config.max_text_size``: a large-file tag,
    4. not strict UTF-8, or binary-looking content: an opaque binary tag,
    5. otherwise the literal content, one line per ``\\n``-separated line.

    Parameters
    ----------
    path : pathlib.Path
        Absolute path of the file.
    size : int
        File size in bytes, as reported by ``stat``.
    config : EncoderConfig
        Classification thresholds and the binary-extension set.

    Returns
    -------
    list[str]
        The lines to place between the file start and end markers.
    """
    extension = path.suffix.lower()

    if extension in config.binary_extensions:
        if size == 0:
            return [grammar.format_tag(ContentTag.ZERO_BYTE_BINARY, extension)]
        return grammar.format_binary_reference(str(path), size, extension)

    if size > config.max_text_size:
        return [grammar.format_tag(ContentTag.LARGE_FILE, size)]

    try:
        text = path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return [grammar.format_tag(ContentTag.BINARY_OR_ERROR, grammar.format_error_message(exc))]

    if is_binary_content(
        text,
        sample_size=config.sample_size,
        max_ratio=config.max_non_printable_ratio,
    ):
        return [grammar.format_tag(ContentTag.BINARY_FILE)]

    return text.split("\n")


def _error_block(relative: str, message: str) -> list[str]:
    return [
        grammar.format_file_start(relative),
        grammar.format_tag(ContentTag.ERROR, message),
        grammar.format_file_end(),
    ]


def _open_root(root: Path | str) -> _Root:
    """Resolve and list the root, raising :class:`FatalInputError` on failure."""
    resolved = Path(os.path.abspath(root))
    if not resolved.exists():
        raise FatalInputError(f"Input path does not exist: {resolved}")
    if not resolved.is_dir():
        raise FatalInputError(f"Input path is not a directory: {resolved}")
    try:
        entries = os.listdir(resolved)
    except OSError as exc:
        raise FatalInputError(f"Failed to read directory contents: {exc}") from exc
    return _Root(resolved, entries)


def _stat_node(node: FilesystemNode) -> FilesystemNode:
    """Fill in ``kind`` and ``size``, following symlinks. Raises ``OSError``."""
    st = os.stat(node.path)
    if stat.S_ISDIR(st.st_mode):
        kind = NodeKind.DIRECTORY
    elif stat.S_ISREG(st.st_mode):
        kind = NodeKind.FILE
    else:
        kind = NodeKind.OTHER
    return node._replace(kind=kind, size=st.st_size)


def _visit(session: EncodingSession, node: FilesystemNode, stack: list[FilesystemNode]) -> None:
    """Emit one node, pushing the children of directories onto ``stack``."""
    stats = session.stats
    config = session.config

    canonical = os.path.realpath(node.path)
    if canonical in session.visited:
        return
    session.visited.add(canonical)

    try:
        node = _stat_node(node)
    except OSError as exc:
        stats.errors += 1
        logger.warning("encode.node_error", path=str(node.path), error=str(exc))
        session.emit(_error_block(node.relative, grammar.format_error_message(exc)))
        return

    if node.kind is NodeKind.DIRECTORY:
        if node.path.name in config.excluded_dirs:
            stats.excluded += 1
            logger.info("encode.excluded", path=str(node.path))
            return

        session.emit([grammar.format_folder(node.relative)])
        stats.directories += 1
        if stats.directories % config.progress_every_dirs == 0:
            session.log_progress()

        try:
            entries = os.listdir(node.path)
        except OSError as exc:
            stats.errors += 1
            logger.warning("encode.list_failed", path=str(node.path), error=str(exc))
            return

        stack.extend(
            FilesystemNode(node.path / name, f"{node.relative}/{name}")
            for name in reversed(entries)
        )
        return

    if node.kind is NodeKind.FILE:
        stats.files += 1
        stats.bytes += node.size
        if stats.files % config.progress_every_files == 0:
            session.log_progress()

        session.emit([grammar.format_file_start(node.relative)])
        session.emit(file_content_lines(node.path, node.size, config))
        session.emit([grammar.format_file_end()])
        return

    stats.errors += 1
    logger.warning("encode.unsupported_entry", path=str(node.path))
    session.emit(_error_block(node.relative, "Unsupported file type"))


def _encode(
    root: _Root,
    sink: TextIO,
    config: EncoderConfig,
    clock: Clock,
) -> EncodeStats:
    session = EncodingSession(sink=sink, config=config)
    session.visited.add(os.path.realpath(root.path))

    logger.info(
        "encode.start",
        root=str(root.path),
        excluded=list(config.excluded_dirs),
    )

    session.emit(grammar.format_header(str(root.path), clock(), config.excluded_dirs))
    base_name = root.path.name
    session.emit([grammar.format_folder(base_name)])
    session.stats.directories += 1

    stack = [FilesystemNode(root.path / name, f"{base_name}/{name}") for name in reversed(root.entries)]
    while stack:
        _visit(session, stack.pop(), stack)
        session.maybe_flush()

    session.finish()

    stats = session.stats
    logger.info(
        "encode.done",
        files=stats.files,
        directories=stats.directories,
        excluded=stats.excluded,
        errors=stats.errors,
        megabytes=round(stats.bytes / (1024 * 1024), 2),
    )
    return stats


def encode_tree(
    root: Path | str,
    sink: TextIO,
    config: EncoderConfig | None = None,
    *,
    clock: Clock | None = None,
) -> EncodeStats:
    """
    Encode a directory tree and write the document to a text stream.

    The root is validated and listed before anything is written, so a
    rejected root leaves ``sink`` untouched. Afterwards output is written in
    chunks whenever more than ``config.flush_threshold`` lines are pending.

    Parameters
    ----------
    root : pathlib.Path | str
        Directory to encode. It appears in the document under its own name.
    sink : TextIO
        Destination stream. Use ``newline=""`` for files so carriage
        returns inside content are written unchanged.
    config : EncoderConfig | None, optional
        Encoding options; defaults to :class:`EncoderConfig()`.
    clock : Callable[[], datetime] | None, optional
        Source of the ``Generated`` timestamp. Defaults to the current UTC time.

    Returns
    -------
    EncodeStats
        Counters for files, directories, bytes, exclusions and errors.

    Raises
    ------
    FatalInputError
        If ``root`` is missing, not a directory or cannot be listed, or if
        the final write fails.
    """
    prepared = _open_root(root)
    return _encode(prepared, sink, config or EncoderConfig(), clock or _utc_now)


def encode_to_string(
    root: Path | str,
    config: EncoderConfig | None = None,
    *,
    clock: Clock | None = None,
) -> str:
    """Encode ``root`` and return the whole document as a string."""
    prepared = _open_root(root)
    buffer = io.StringIO(newline="")
    _encode(prepared, buffer, config or EncoderConfig(), clock or _utc_now)
    return buffer.getvalue()


def encode_to_file(
    root: Path | str,
    output_path: Path | str,
    config: EncoderConfig | None = None,
    *,
    clock: Clock | None = None,
) -> EncodeStats:
    """
    Encode ``root`` into the file at ``output_path``.

    The parent directory of ``output_path`` is created if needed and an
    existing file is overwritten. Nothing is created when the root is
    rejected.

    Raises
    ------
    FatalInputError
        If the root is unusable or the output file cannot be opened.
    """
    prepared = _open_root(root)
    output = Path(output_path)
    if output.exists():
        logger.warning("encode.overwrite", output=str(output))

    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        handle = output.open("w", encoding="utf-8", newline="")
    except OSError as exc:
        raise FatalInputError(f"Cannot open output file {output}: {exc}") from exc

    with handle:
        return _encode(prepared, handle, config or EncoderConfig(), clock or _utc_now)
