# foldertext/grammar.py

"""
The line grammar shared by the encoder and the decoder.

A document is an envelope (a descriptive header followed by begin/end
sentinels) around a flat sequence of structural markers and literal content
lines::

    === FOLDER STRUCTURE EXPORT ===
    Source: /abs/path/to/project
    Generated: 2024-01-01T00:00:00.000Z
    Excluded directories: node_modules

    === BEGIN CONTENT ===
    --- FOLDER: project ---
    --- FILE: project/readme.md ---
    # Hello
    --- END FILE ---
    === END CONTENT ===

Inside a file block the first line may be a content marker such as
``[BINARY FILE]`` standing in for content that is not embedded.

Every marker is defined once here, as a :class:`Token` or a
:class:`ContentTag`, and each has a ``format_*`` function and a matching
``parse_*`` function so the two sides cannot drift apart.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, NamedTuple


class Token(str, Enum):
    """Structural line tokens."""

    EXPORT_HEADER = "=== FOLDER STRUCTURE EXPORT ==="
    BEGIN_CONTENT = "=== BEGIN CONTENT ==="
    END_CONTENT = "=== END CONTENT ==="
    FOLDER = "--- FOLDER:"
    FILE = "--- FILE:"
    END_FILE = "--- END FILE ---"


class ContentTag(str, Enum):
    """Single-line tags used in place of literal file content."""

    ZERO_BYTE_BINARY = "ZERO_BYTE_BINARY"
    BINARY_FILE_PATH = "BINARY_FILE_PATH"
    BINARY_FILE_SIZE = "BINARY_FILE_SIZE"
    BINARY_FILE_EXT = "BINARY_FILE_EXT"
    BINARY_FILE = "BINARY FILE"
    LARGE_FILE = "LARGE FILE"
    BINARY_OR_ERROR = "BINARY or ERROR"
    ERROR = "ERROR"


# Tags whose single line means "content is unrecoverable, leave a placeholder".
PLACEHOLDER_TAGS = frozenset(
    {
        ContentTag.BINARY_FILE,
        ContentTag.LARGE_FILE,
        ContentTag.BINARY_OR_ERROR,
        ContentTag.ERROR,
    }
)

HEADER_SOURCE = "Source: "
HEADER_GENERATED = "Generated: "
HEADER_EXCLUDED = "Excluded directories: "

_MARKER_CLOSE = "---"

_CONTENT_TAG_RE = re.compile(
    r"^\[(?:"
    r"(?P<colon>ZERO_BYTE_BINARY|BINARY_FILE_PATH|BINARY_FILE_SIZE|BINARY_FILE_EXT):(?P<colon_value>.*)"
    r"|(?P<spaced>BINARY or ERROR|ERROR): (?P<spaced_value>.*)"
    r"|LARGE FILE: (?P<large>\d+) bytes"
    r"|(?P<bare>BINARY FILE)"
    r")\]$"
)


class Marker(NamedTuple):
    """A parsed structural line: its token and, for folders/files, the path."""

    token: Token
    path: str | None = None


class Tag(NamedTuple):
    """A parsed content tag and its payload (extension, path, size, message)."""

    tag: ContentTag
    value: str | None = None


# ---------------------------------------------------------------------------
# Envelope


def format_timestamp(moment: datetime) -> str:
    """Render ``moment`` as UTC ISO-8601 with milliseconds and a ``Z`` suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_header(source: str, generated: datetime, excluded: Iterable[str]) -> list[str]:
    """
    Build the envelope header, up to and including the begin sentinel.

    Parameters
    ----------
    source : str
        Absolute path of the encoded root.
    generated : datetime
        Generation time, rendered by :func:`format_timestamp`.
    excluded : Iterable[str]
        Excluded directory names, listed comma-separated.

    Returns
    -------
    list[str]
        The header lines, without line terminators.
    """
    return [
        Token.EXPORT_HEADER.value,
        f"{HEADER_SOURCE}{source}",
        f"{HEADER_GENERATED}{format_timestamp(generated)}",
        f"{HEADER_EXCLUDED}{', '.join(excluded)}",
        "",
        Token.BEGIN_CONTENT.value,
    ]


def format_footer() -> str:
    return Token.END_CONTENT.value


# ---------------------------------------------------------------------------
# Structural markers


def format_folder(path: str) -> str:
    return f"{Token.FOLDER.value} {path} {_MARKER_CLOSE}"


def format_file_start(path: str) -> str:
    return f"{Token.FILE.value} {path} {_MARKER_CLOSE}"


def format_file_end() -> str:
    return Token.END_FILE.value


def parse_marker(line: str) -> Marker | None:
    """
    Recognise a structural line.

    Matching is done on the stripped line so documents that went through
    CRLF conversion or editor re-indentation still parse. Paths are stripped
    as well, which means leading or trailing blanks in names do not survive
    a round trip.

    Parameters
    ----------
    line : str
        One document line, without its terminator.

    Returns
    -------
    Marker | None
        The recognised marker, or ``None`` for content lines.
    """
    stripped = line.strip()
    if not stripped:
        return None

    for token in (Token.BEGIN_CONTENT, Token.END_CONTENT, Token.END_FILE):
        if stripped == token.value:
            return Marker(token)

    for token in (Token.FOLDER, Token.FILE):
        if (
            stripped.startswith(token.value)
            and stripped.endswith(_MARKER_CLOSE)
            and len(stripped) >= len(token.value) + len(_MARKER_CLOSE)
        ):
            path = stripped[len(token.value) : -len(_MARKER_CLOSE)].strip()
            return Marker(token, path)

    return None


# ---------------------------------------------------------------------------
# Content tags


def format_tag(tag: ContentTag, value: str | int | None = None) -> str:
    """
    Render a content tag line.

    ``value`` is required for every tag except :attr:`ContentTag.BINARY_FILE`.
    """
    if tag is ContentTag.BINARY_FILE:
        return f"[{tag.value}]"
    if value is None:
        raise ValueError(f"{tag.name} requires a value")
    if tag is ContentTag.LARGE_FILE:
        return f"[{tag.value}: {int(value)} bytes]"
    if tag in (ContentTag.BINARY_OR_ERROR, ContentTag.ERROR):
        return f"[{tag.value}: {value}]"
    return f"[{tag.value}:{value}]"


def format_binary_reference(source: str, size: int, extension: str) -> list[str]:
    """The three tag lines recording a binary file by its original location."""
    return [
        format_tag(ContentTag.BINARY_FILE_PATH, source),
        format_tag(ContentTag.BINARY_FILE_SIZE, size),
        format_tag(ContentTag.BINARY_FILE_EXT, extension),
    ]


def parse_binary_reference(lines: list[str]) -> str | None:
    """
    Return the source path of a block written by :func:`format_binary_reference`.

    The block must be exactly the three tag lines in order; anything else,
    such as a text file that merely starts with a path tag, yields ``None``.
    """
    if len(lines) != 3:
        return None
    tags = [parse_tag(line) for line in lines]
    kinds = [t.tag if t is not None else None for t in tags]
    if kinds != [ContentTag.BINARY_FILE_PATH, ContentTag.BINARY_FILE_SIZE, ContentTag.BINARY_FILE_EXT]:
        return None
    if not (tags[1].value or "").isdigit():
        return None
    return tags[0].value


def parse_tag(line: str) -> Tag | None:
    """
    Recognise a content tag line.

    Returns ``None`` for ordinary content, including lines that merely
    contain a tag-like fragment.
    """
    match = _CONTENT_TAG_RE.match(line.rstrip("\r"))
    if match is None:
        return None
    if match.group("colon"):
        return Tag(ContentTag(match.group("colon")), match.group("colon_value"))
    if match.group("spaced"):
        return Tag(ContentTag(match.group("spaced")), match.group("spaced_value"))
    if match.group("large"):
        return Tag(ContentTag.LARGE_FILE, match.group("large"))
    return Tag(ContentTag.BINARY_FILE)


def format_error_message(error: BaseException) -> str:
    """Flatten an exception into a message that fits on one tag line."""
    message = str(error) or type(error).__name__
    return " ".join(message.splitlines())
