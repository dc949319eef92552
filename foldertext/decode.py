# foldertext/decode.py

"""
Text document to directory tree decoding.

Decoding is split in two:

- :func:`parse_document` is a pure state machine turning a stream of lines
  into :class:`FolderUnit` and :class:`FileUnit` values, with base-folder
  normalization already applied;
- :class:`DecodingSession` materializes those units under a destination
  directory and keeps the counters.

Because the parser only ever sees one line at a time, decoding a document
held in memory and decoding it line by line from disk produce the same
units, and therefore the same tree.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Iterator, Union

from foldertext import grammar
from foldertext.config import DecoderConfig
from foldertext.errors import FatalInputError
from foldertext.grammar import ContentTag, Token
from foldertext.log import get_logger

logger = get_logger(__name__)

IconHook = Callable[[Path], None]

_SEPARATORS = ("/", "\\")
_READ_CHUNK = 1024 * 1024


class ParserState(Enum):
    PREAMBLE = "preamble"
    IN_CONTENT = "in_content"
    IN_FILE = "in_file"


@dataclass
class FolderUnit:
    """A directory to create, relative to the destination root."""

    path: str


@dataclass
class FileUnit:
    """A file to write, relative to the destination root, with its raw body lines."""

    path: str
    lines: list[str] = field(default_factory=list)


Unit = Union[FolderUnit, FileUnit]


@dataclass
class DecodeStats:
    """Counters accumulated by one decode call."""

    lines: int = 0
    folders: int = 0
    files: int = 0
    placeholders: int = 0
    binaries_copied: int = 0
    skipped: int = 0
    errors: int = 0
    pending_icons: list[Path] = field(default_factory=list)


class DocumentParser:
    """
    Line-at-a-time parser for the document grammar.

    States move ``PREAMBLE -> IN_CONTENT -> IN_FILE``. Each call to
    :meth:`feed` handles exactly one line and yields the units that line
    completed. :meth:`close` flushes a file left open by a truncated
    document.
    """

    def __init__(self) -> None:
        self.state = ParserState.PREAMBLE
        self.pending: FileUnit | None = None
        self.base_folder: str | None = None

    def feed(self, line: str) -> Iterator[Unit]:
        marker = grammar.parse_marker(line)

        if self.state is ParserState.PREAMBLE:
            if marker is not None and marker.token is Token.BEGIN_CONTENT:
                self.state = ParserState.IN_CONTENT
            return

        if marker is None:
            if self.state is ParserState.IN_FILE and self.pending is not None:
                self.pending.lines.append(line)
            return

        if marker.token is Token.BEGIN_CONTENT:
            # A repeated sentinel is not content; keep the current state.
            if self.state is ParserState.IN_FILE and self.pending is not None:
                self.pending.lines.append(line)
            return

        yield from self._complete_pending()

        if marker.token is Token.END_CONTENT:
            self.state = ParserState.PREAMBLE
        elif marker.token is Token.END_FILE:
            self.state = ParserState.IN_CONTENT
        elif marker.token is Token.FOLDER:
            self.state = ParserState.IN_CONTENT
            folder = self._folder_path(marker.path or "")
            if folder:
                yield FolderUnit(folder)
        elif marker.token is Token.FILE:
            self.state = ParserState.IN_FILE
            self.pending = FileUnit(self._strip_base(marker.path or ""))

    def close(self) -> Iterator[Unit]:
        yield from self._complete_pending()
        self.state = ParserState.PREAMBLE

    def _complete_pending(self) -> Iterator[Unit]:
        if self.pending is not None:
            unit, self.pending = self.pending, None
            yield unit

    def _folder_path(self, path: str) -> str:
        if self.base_folder is None and not any(sep in path for sep in _SEPARATORS):
            self.base_folder = path
            logger.info("decode.base_folder", name=path)
            return ""
        return self._strip_base(path)

    def _strip_base(self, path: str) -> str:
        base = self.base_folder
        if base is None:
            return path
        if path == base:
            return ""
        for sep in _SEPARATORS:
            if path.startswith(base + sep):
                return path[len(base) + 1 :]
        return path


def parse_document(lines: Iterable[str]) -> Iterator[Unit]:
    """
    Parse document lines into folder and file units.

    Parameters
    ----------
    lines : Iterable[str]
        Document lines without terminators, e.g. ``text.split("\\n")`` or
        :func:`iter_document_lines`.

    Yields
    ------
    FolderUnit | FileUnit
        Units in document order. Paths are relative to the destination root:
        the base folder has been stripped and the base folder itself is not
        yielded.
    """
    parser = DocumentParser()
    for line in lines:
        yield from parser.feed(line)
    yield from parser.close()


def resolve_target(destination: Path, relative: str) -> Path | None:
    """
    Map a document path onto ``destination``.

    Both ``/`` and ``\\`` separate components; empty and ``.`` components are
    ignored. Returns ``None`` for paths that would escape the destination
    (any ``..`` component) or that name the destination itself.
    """
    parts = [p for p in relative.replace("\\", "/").split("/") if p not in ("", ".")]
    if not parts or ".." in parts:
        return None
    return destination.joinpath(*parts)


@dataclass
class DecodingSession:
    """
    Mutable state owned by a single decode call.

    The session owns the parser and applies every unit it yields to the
    filesystem under ``destination``.
    """

    destination: Path
    config: DecoderConfig = field(default_factory=DecoderConfig)
    on_icon: IconHook | None = None
    total_lines: int | None = None
    parser: DocumentParser = field(default_factory=DocumentParser)
    stats: DecodeStats = field(default_factory=DecodeStats)

    def feed(self, line: str) -> None:
        self.stats.lines += 1
        for unit in self.parser.feed(line):
            self.materialize(unit)
        if self.stats.lines % self.config.progress_every_lines == 0:
            self.log_progress()

    def close(self) -> DecodeStats:
        for unit in self.parser.close():
            self.materialize(unit)
        return self.stats

    def log_progress(self) -> None:
        percent = None
        if self.total_lines:
            percent = round(self.stats.lines / self.total_lines * 100, 1)
        logger.info(
            "decode.progress",
            lines=self.stats.lines,
            percent=percent,
            files=self.stats.files,
            folders=self.stats.folders,
        )

    def materialize(self, unit: Unit) -> None:
        target = resolve_target(self.destination, unit.path)
        if target is None:
            self.stats.skipped += 1
            logger.warning("decode.unsafe_path", path=unit.path)
            return
        if isinstance(unit, FolderUnit):
            self._create_folder(target)
        else:
            self._write_file(target, unit.lines)

    def _create_folder(self, target: Path) -> None:
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self.stats.errors += 1
            logger.error("decode.mkdir_failed", path=str(target), error=str(exc))
            return
        self.stats.folders += 1
        logger.debug("decode.folder", path=str(target))

    def _write_file(self, target: Path, lines: list[str]) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self.stats.errors += 1
            logger.error("decode.mkdir_failed", path=str(target.parent), error=str(exc))
            return

        # Tags only count when the whole body is a tag block; a text file that
        # merely starts with a tag-shaped line is written as text.
        tag = grammar.parse_tag(lines[0]) if len(lines) == 1 else None
        binary_source = grammar.parse_binary_reference(lines)

        if tag is not None and tag.tag is ContentTag.ZERO_BYTE_BINARY:
            if self._write_bytes(target, b""):
                self.stats.files += 1
                if target.name in self.config.icon_names:
                    self.stats.pending_icons.append(target)
                    logger.info("decode.icon_placeholder", path=str(target))
                    if self.on_icon is not None:
                        self.on_icon(target)
            return

        if binary_source is not None:
            self._copy_binary(target, Path(binary_source))
            return

        if tag is not None and tag.tag in grammar.PLACEHOLDER_TAGS:
            logger.info("decode.placeholder", path=str(target), reason=tag.tag.value)
            if self._write_bytes(target, b""):
                self.stats.placeholders += 1
            return

        try:
            target.write_text("\n".join(lines), encoding="utf-8", newline="")
        except OSError as exc:
            self.stats.errors += 1
            logger.error("decode.write_failed", path=str(target), error=str(exc))
            return
        self.stats.files += 1
        logger.debug("decode.file", path=str(target))

    def _copy_binary(self, target: Path, source: Path) -> None:
        if source.is_file():
            try:
                shutil.copyfile(source, target)
            except OSError as exc:
                self.stats.errors += 1
                logger.error(
                    "decode.copy_failed", source=str(source), path=str(target), error=str(exc)
                )
            else:
                self.stats.binaries_copied += 1
                self.stats.files += 1
                logger.debug("decode.binary_copied", source=str(source), path=str(target))
                return
        else:
            logger.warning("decode.binary_source_missing", source=str(source), path=str(target))

        if self._write_bytes(target, b""):
            self.stats.placeholders += 1

    def _write_bytes(self, target: Path, data: bytes) -> bool:
        try:
            target.write_bytes(data)
        except OSError as exc:
            self.stats.errors += 1
            logger.error("decode.write_failed", path=str(target), error=str(exc))
            return False
        return True


def iter_document_lines(path: Path | str) -> Iterator[str]:
    """
    Yield the lines of a document file one at a time.

    Lines are split on ``\\n`` only and carriage returns are kept, so the
    sequence is exactly ``path.read_text().split("\\n")`` without holding the
    whole document in memory. In particular a trailing newline yields a
    final empty line.
    """
    with open(path, encoding="utf-8", newline="\n") as handle:
        ended_with_newline = True
        for raw in handle:
            if raw.endswith("\n"):
                ended_with_newline = True
                yield raw[:-1]
            else:
                ended_with_newline = False
                yield raw
        if ended_with_newline:
            yield ""


def count_lines(path: Path | str) -> int:
    """Count the lines :func:`iter_document_lines` will yield, for progress reporting."""
    newlines = 0
    with open(path, "rb") as handle:
        while chunk := handle.read(_READ_CHUNK):
            newlines += chunk.count(b"\n")
    return newlines + 1


def decode_lines(
    lines: Iterable[str],
    destination: Path | str,
    config: DecoderConfig | None = None,
    *,
    on_icon: IconHook | None = None,
    total_lines: int | None = None,
) -> DecodeStats:
    """
    Rebuild a tree from document lines under ``destination``.

    Parameters
    ----------
    lines : Iterable[str]
        Document lines without terminators. Any iterable works, including a
        lazy one, which keeps memory use independent of document size.
    destination : pathlib.Path | str
        Directory standing in for the encoded root. Created if missing.
    config : DecoderConfig | None, optional
        Decoding options.
    on_icon : Callable[[pathlib.Path], None] | None, optional
        Called with every empty icon placeholder written (``favicon.ico``
        by default) so a caller can populate it.
    total_lines : int | None, optional
        Line count of the document, used only to report progress percentages.

    Returns
    -------
    DecodeStats
        Counters for created folders, files, placeholders and failures.

    Raises
    ------
    FatalInputError
        If ``destination`` cannot be created.
    """
    dest = Path(destination)
    try:
        dest.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FatalInputError(f"Failed to create output directory {dest}: {exc}") from exc

    session = DecodingSession(
        destination=dest,
        config=config or DecoderConfig(),
        on_icon=on_icon,
        total_lines=total_lines,
    )
    for line in lines:
        session.feed(line)
    stats = session.close()

    logger.info(
        "decode.done",
        destination=str(dest),
        files=stats.files,
        folders=stats.folders,
        placeholders=stats.placeholders,
        skipped=stats.skipped,
        errors=stats.errors,
    )
    return stats


def decode_text(
    text: str,
    destination: Path | str,
    config: DecoderConfig | None = None,
    *,
    on_icon: IconHook | None = None,
) -> DecodeStats:
    """
    Rebuild a tree from a document held in memory.

    Raises
    ------
    FatalInputError
        If ``text`` is empty or ``destination`` cannot be created.
    """
    if not text:
        raise FatalInputError("Input document is empty")
    lines = text.split("\n")
    return decode_lines(lines, destination, config, on_icon=on_icon, total_lines=len(lines))


def decode_file(
    document: Path | str,
    destination: Path | str,
    config: DecoderConfig | None = None,
    *,
    streaming: bool | None = None,
    on_icon: IconHook | None = None,
) -> DecodeStats:
    """
    Rebuild a tree from a document file.

    Parameters
    ----------
    document : pathlib.Path | str
        Path of the document to read.
    destination : pathlib.Path | str
        Directory standing in for the encoded root.
    config : DecoderConfig | None, optional
        Decoding options.
    streaming : bool | None, optional
        ``True`` reads the document line by line, ``False`` loads it whole.
        ``None`` streams documents larger than ``config.streaming_threshold``.
        The resulting tree is the same either way.
    on_icon : Callable[[pathlib.Path], None] | None, optional
        See :func:`decode_lines`.

    Returns
    -------
    DecodeStats
        Counters for the decode.

    Raises
    ------
    FatalInputError
        If the document is missing, not a file, empty or unreadable, or if
        ``destination`` cannot be created.
    """
    config = config or DecoderConfig()
    doc = Path(document)
    try:
        size = os.stat(doc).st_size
    except OSError as exc:
        raise FatalInputError(f"Input file does not exist: {doc}") from exc
    if not doc.is_file():
        raise FatalInputError(f"Input path is not a file: {doc}")
    if size == 0:
        raise FatalInputError(f"Input file is empty: {doc}")

    dest = Path(destination)
    if dest.is_dir() and any(dest.iterdir()):
        logger.warning("decode.destination_not_empty", destination=str(dest))

    if streaming is None:
        streaming = size > config.streaming_threshold

    logger.info("decode.start", document=str(doc), destination=str(dest), streaming=streaming)

    if streaming:
        try:
            total = count_lines(doc)
        except OSError as exc:
            logger.warning("decode.count_failed", error=str(exc))
            total = None
        return decode_lines(_read_lines(doc), dest, config, on_icon=on_icon, total_lines=total)

    try:
        with open(doc, encoding="utf-8", newline="") as handle:
            text = handle.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise FatalInputError(f"Failed to read document {doc}: {exc}") from exc
    lines = text.split("\n")
    return decode_lines(lines, dest, config, on_icon=on_icon, total_lines=len(lines))


def _read_lines(doc: Path) -> Iterator[str]:
    """:func:`iter_document_lines`, with read failures raised as :class:`FatalInputError`."""
    try:
        yield from iter_document_lines(doc)
    except (OSError, UnicodeDecodeError) as exc:
        raise FatalInputError(f"Failed to read document {doc}: {exc}") from exc
