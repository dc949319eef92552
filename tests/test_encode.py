# tests/test_encode.py
import io
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from foldertext import EncoderConfig, FatalInputError, encode_to_file, encode_to_string, encode_tree
from foldertext.encode import FilesystemNode, NodeKind, _stat_node, is_binary_content

MIB = 1024 * 1024


def _clock():
    return datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)


def _make_file(p: Path, content: str = "x"):
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8", newline="")


def _content(doc: str) -> list[str]:
    """Lines between the begin and end sentinels."""
    lines = doc.split("\n")
    start = lines.index("=== BEGIN CONTENT ===")
    assert lines[-1] == "=== END CONTENT ==="
    return lines[start + 1 : -1]


def _blocks(doc: str) -> dict[str, list[str]]:
    """Map each file path to the body lines of its block."""
    blocks: dict[str, list[str]] = {}
    current = None
    for line in _content(doc):
        if line.startswith("--- FILE: "):
            current = line[len("--- FILE: ") : -len(" ---")]
            blocks[current] = []
        elif line == "--- END FILE ---":
            current = None
        elif current is not None:
            blocks[current].append(line)
    return blocks


def _folders(doc: str) -> list[str]:
    return [
        line[len("--- FOLDER: ") : -len(" ---")]
        for line in _content(doc)
        if line.startswith("--- FOLDER: ")
    ]


@pytest.fixture
def proj(tmp_path: Path) -> Path:
    root = tmp_path / "proj"
    root.mkdir()
    return root


def test_header_and_envelope(proj: Path):
    _make_file(proj / "a.txt", "hello")

    doc = encode_to_string(proj, clock=_clock)
    lines = doc.split("\n")

    assert lines[:6] == [
        "=== FOLDER STRUCTURE EXPORT ===",
        f"Source: {os.path.abspath(proj)}",
        "Generated: 2024-01-02T03:04:05.678Z",
        "Excluded directories: node_modules",
        "",
        "=== BEGIN CONTENT ===",
    ]
    assert lines[-1] == "=== END CONTENT ==="
    assert not doc.endswith("\n")


def test_root_marker_uses_only_root_name(proj: Path):
    _make_file(proj / "a.txt", "hello\nworld")
    (proj / "src").mkdir()
    _make_file(proj / "src/m.py", "x = 1\n")

    doc = encode_to_string(proj, clock=_clock)

    assert _content(doc)[0] == "--- FOLDER: proj ---"
    assert "proj/src" in _folders(doc)
    blocks = _blocks(doc)
    assert blocks["proj/a.txt"] == ["hello", "world"]
    assert blocks["proj/src/m.py"] == ["x = 1", ""]


def test_directory_precedes_its_children(proj: Path):
    _make_file(proj / "src/deep/f.txt", "f")

    content = _content(encode_to_string(proj, clock=_clock))

    assert content.index("--- FOLDER: proj/src ---") < content.index("--- FOLDER: proj/src/deep ---")
    assert content.index("--- FOLDER: proj/src/deep ---") < content.index("--- FILE: proj/src/deep/f.txt ---")


def test_default_exclusion_skips_subtree(proj: Path):
    _make_file(proj / "node_modules/pkg/index.js", "module.exports = 1")
    _make_file(proj / "lib/node_modules/other.js", "1")
    _make_file(proj / "lib/keep.js", "2")

    out = io.StringIO()
    stats = encode_tree(proj, out, clock=_clock)
    content = "\n".join(_content(out.getvalue()))

    assert "node_modules" not in content
    assert "--- FILE: proj/lib/keep.js ---" in content
    assert stats.excluded == 2


def test_custom_exclusions(proj: Path):
    _make_file(proj / ".git/config", "[core]")
    _make_file(proj / "build/out.txt", "o")
    _make_file(proj / "main.py", "pass")

    config = EncoderConfig().with_excluded(".git", "build")
    doc = encode_to_string(proj, config, clock=_clock)

    assert doc.split("\n")[3] == "Excluded directories: node_modules, .git, build"
    assert set(_blocks(doc)) == {"proj/main.py"}
    assert _folders(doc) == ["proj"]


def test_exclusion_matches_directories_only(proj: Path):
    _make_file(proj / "node_modules", "a file, not a directory")

    doc = encode_to_string(proj, clock=_clock)

    assert _blocks(doc)["proj/node_modules"] == ["a file, not a directory"]


def test_zero_byte_binary_extension(proj: Path):
    (proj / "icon.png").write_bytes(b"")

    blocks = _blocks(encode_to_string(proj, clock=_clock))

    assert blocks["proj/icon.png"] == ["[ZERO_BYTE_BINARY:.png]"]


def test_binary_extension_records_original_path(proj: Path):
    logo = proj / "Logo.PNG"
    logo.write_bytes(b"\x89PNG\r\n\x1a\n")

    blocks = _blocks(encode_to_string(proj, clock=_clock))

    assert blocks["proj/Logo.PNG"] == [
        f"[BINARY_FILE_PATH:{logo}]",
        "[BINARY_FILE_SIZE:8]",
        "[BINARY_FILE_EXT:.png]",
    ]


def test_large_file_is_never_read(proj: Path, monkeypatch):
    big = proj / "big.txt"
    with open(big, "wb") as f:
        f.truncate(15 * MIB)

    def _fail(path):
        raise AssertionError(f"large file was read: {path}")

    monkeypatch.setattr(Path, "read_bytes", _fail)
    blocks = _blocks(encode_to_string(proj, clock=_clock))

    assert blocks["proj/big.txt"] == [f"[LARGE FILE: {15 * MIB} bytes]"]


def test_null_byte_marks_text_file_binary(proj: Path):
    (proj / "data.txt").write_bytes(b"abc\x00def")

    blocks = _blocks(encode_to_string(proj, clock=_clock))

    assert blocks["proj/data.txt"] == ["[BINARY FILE]"]


def test_control_characters_mark_text_file_binary(proj: Path):
    (proj / "noisy.txt").write_bytes(b"\x01" * 200 + b"a" * 800)
    (proj / "mostly_text.txt").write_bytes(b"\x01" * 50 + b"a" * 950)

    blocks = _blocks(encode_to_string(proj, clock=_clock))

    assert blocks["proj/noisy.txt"] == ["[BINARY FILE]"]
    assert blocks["proj/mostly_text.txt"] == ["\x01" * 50 + "a" * 950]


def test_invalid_utf8_is_binary_or_error(proj: Path):
    (proj / "latin1.txt").write_bytes("café".encode("latin-1"))

    blocks = _blocks(encode_to_string(proj, clock=_clock))

    assert len(blocks["proj/latin1.txt"]) == 1
    assert blocks["proj/latin1.txt"][0].startswith("[BINARY or ERROR: ")


def test_read_error_is_recorded_and_traversal_continues(proj: Path, monkeypatch):
    _make_file(proj / "secret.txt", "hidden")
    _make_file(proj / "open.txt", "visible")
    real_read = Path.read_bytes

    def _read(path):
        if path.name == "secret.txt":
            raise PermissionError("denied")
        return real_read(path)

    monkeypatch.setattr(Path, "read_bytes", _read)
    blocks = _blocks(encode_to_string(proj, clock=_clock))

    assert blocks["proj/secret.txt"] == ["[BINARY or ERROR: denied]"]
    assert blocks["proj/open.txt"] == ["visible"]


def test_carriage_returns_and_empty_files_are_kept(proj: Path):
    _make_file(proj / "crlf.txt", "a\r\nb\r\n")
    _make_file(proj / "empty.txt", "")

    blocks = _blocks(encode_to_string(proj, clock=_clock))

    assert blocks["proj/crlf.txt"] == ["a\r", "b\r", ""]
    assert blocks["proj/empty.txt"] == [""]


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="FIFOs are POSIX-only")
def test_unsupported_entry_is_recorded(proj: Path):
    os.mkfifo(proj / "pipe")
    _make_file(proj / "a.txt", "a")

    out = io.StringIO()
    with capture_logs() as logs:
        stats = encode_tree(proj, out, clock=_clock)

    blocks = _blocks(out.getvalue())
    assert blocks["proj/pipe"] == ["[ERROR: Unsupported file type]"]
    assert blocks["proj/a.txt"] == ["a"]
    assert stats.errors == 1
    assert any(e["event"] == "encode.unsupported_entry" and e["log_level"] == "warning" for e in logs)


@pytest.mark.skipif(sys.platform.startswith("win"), reason="Symlink creation needs privileges on Windows")
def test_broken_symlink_is_recorded_as_error(proj: Path):
    (proj / "dangling").symlink_to(proj / "missing-target")
    _make_file(proj / "a.txt", "a")

    blocks = _blocks(encode_to_string(proj, clock=_clock))

    assert len(blocks["proj/dangling"]) == 1
    assert blocks["proj/dangling"][0].startswith("[ERROR: ")
    assert blocks["proj/a.txt"] == ["a"]


@pytest.mark.skipif(sys.platform.startswith("win"), reason="Symlink creation needs privileges on Windows")
def test_symlink_cycle_is_skipped(proj: Path):
    _make_file(proj / "a/f.txt", "f")
    (proj / "a/loop").symlink_to(proj, target_is_directory=True)

    doc = encode_to_string(proj, clock=_clock)

    assert "proj/a/loop" not in "\n".join(_content(doc))
    assert set(_blocks(doc)) == {"proj/a/f.txt"}


def test_missing_root_is_fatal(tmp_path: Path):
    with pytest.raises(FatalInputError):
        encode_to_string(tmp_path / "nope")


def test_file_root_is_fatal_and_writes_nothing(tmp_path: Path):
    f = tmp_path / "single.txt"
    _make_file(f, "x")
    output = tmp_path / "out/doc.txt"

    with pytest.raises(FatalInputError):
        encode_to_file(f, output)
    assert not output.exists()

    sink = io.StringIO()
    with pytest.raises(FatalInputError):
        encode_tree(f, sink)
    assert sink.getvalue() == ""


def test_encode_to_file_creates_parent_and_matches_string(proj: Path, tmp_path: Path):
    _make_file(proj / "a.txt", "a\r\nb")
    output = tmp_path / "nested/out/doc.txt"

    stats = encode_to_file(proj, output, clock=_clock)

    assert stats.files == 1 and stats.directories == 1
    with open(output, encoding="utf-8", newline="") as f:
        assert f.read() == encode_to_string(proj, clock=_clock)


def test_small_flush_threshold_gives_same_document(proj: Path):
    for i in range(5):
        _make_file(proj / f"d{i}/f{i}.txt", "\n".join(f"line {n}" for n in range(10)))

    reference = encode_to_string(proj, clock=_clock)

    out = io.StringIO()
    stats = encode_tree(proj, out, EncoderConfig(flush_threshold=3), clock=_clock)

    assert stats.flushes > 0
    assert out.getvalue() == reference


class _FlakySink(io.StringIO):
    def __init__(self):
        super().__init__()
        self.failed = False

    def write(self, s):
        if not self.failed:
            self.failed = True
            raise OSError("disk full")
        return super().write(s)


def test_failed_flush_is_retried(proj: Path):
    for i in range(4):
        _make_file(proj / f"f{i}.txt", "a\nb\nc")

    reference = encode_to_string(proj, clock=_clock)

    sink = _FlakySink()
    stats = encode_tree(proj, sink, EncoderConfig(flush_threshold=3), clock=_clock)

    assert sink.failed
    assert stats.errors == 1
    assert sink.getvalue() == reference


def test_encoding_twice_differs_only_in_timestamp(proj: Path):
    _make_file(proj / "a.txt", "a")
    _make_file(proj / "sub/b.txt", "b")

    first = encode_to_string(proj, clock=_clock).split("\n")
    second = encode_to_string(proj).split("\n")

    assert len(first) == len(second)
    differing = [i for i, (x, y) in enumerate(zip(first, second)) if x != y]
    assert all(first[i].startswith("Generated: ") for i in differing)


def test_stats_count_files_directories_and_bytes(proj: Path):
    _make_file(proj / "a.txt", "abc")
    _make_file(proj / "sub/b.txt", "de")

    stats = encode_tree(proj, io.StringIO(), clock=_clock)

    assert stats.files == 2
    assert stats.directories == 2
    assert stats.bytes == 5
    assert stats.errors == 0


def test_is_binary_content_thresholds():
    assert is_binary_content("plain\ttext\r\n") is False
    assert is_binary_content("x" * 5000 + "\x00") is True
    # exactly 10% is still text
    assert is_binary_content("\x07" * 100 + "a" * 900) is False
    assert is_binary_content("\x07" * 101 + "a" * 899) is True
    assert is_binary_content("\x7f" * 20 + "a" * 80) is True
    # only the leading sample is inspected for control characters
    assert is_binary_content("a" * 1000 + "\x01" * 1000) is False
    assert is_binary_content("") is False


def test_stat_fills_node_kind_and_size(proj: Path):
    _make_file(proj / "a.txt", "abcd")
    (proj / "sub").mkdir()

    file_node = _stat_node(FilesystemNode(proj / "a.txt", "proj/a.txt"))
    dir_node = _stat_node(FilesystemNode(proj / "sub", "proj/sub"))

    assert file_node.kind is NodeKind.FILE
    assert file_node.size == 4
    assert file_node.relative == "proj/a.txt"
    assert dir_node.kind is NodeKind.DIRECTORY


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="FIFOs are POSIX-only")
def test_stat_marks_special_entries_as_other(proj: Path):
    os.mkfifo(proj / "pipe")

    assert _stat_node(FilesystemNode(proj / "pipe", "proj/pipe")).kind is NodeKind.OTHER
