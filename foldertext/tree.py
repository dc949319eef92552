# foldertext/tree.py

"""
Document inspection.

This module builds an :mod:`anytree` model of the tree stored in a document
and renders it like the Unix ``tree`` command, without writing anything to
disk. Children appear in document order, which is the order the encoder
visited them in.
"""

from __future__ import annotations

from typing import Iterable

from anytree import ContStyle, Node, RenderTree

from foldertext.decode import DocumentParser, FileUnit, Unit
from foldertext.grammar import ContentTag, parse_tag

ROOT_PLACEHOLDER = "."


def _content_kind(unit: FileUnit) -> str:
    """
    Describe what a file block holds.

    Returns ``"text"`` for literal content, otherwise the lower-cased name
    of the content tag (``"zero_byte_binary"``, ``"large_file"``, ...).
    """
    tag = parse_tag(unit.lines[0]) if unit.lines else None
    if tag is None or tag.tag in (ContentTag.BINARY_FILE_SIZE, ContentTag.BINARY_FILE_EXT):
        return "text"
    return tag.tag.name.lower()


def document_tree(lines: Iterable[str]) -> Node:
    """
    Build a node tree from document lines.

    The root node is named after the document's base folder. Every node
    carries a ``kind`` attribute (``"folder"`` or ``"file"``) and a
    ``doc_path`` attribute with its path relative to the root; file nodes
    also carry ``content`` (see :func:`_content_kind`). Intermediate folders
    missing from the document are created implicitly.

    Parameters
    ----------
    lines : Iterable[str]
        Document lines without terminators.

    Returns
    -------
    anytree.Node
        Root of the tree.
    """
    parser = DocumentParser()
    root = Node(ROOT_PLACEHOLDER, kind="folder", doc_path="")
    index: dict[str, Node] = {"": root}

    def node_for(path: str, kind: str) -> Node | None:
        parts = [p for p in path.replace("\\", "/").split("/") if p not in ("", ".")]
        if not parts:
            return None
        parent = root
        for depth, name in enumerate(parts):
            key = "/".join(parts[: depth + 1])
            node = index.get(key)
            if node is None:
                last = depth == len(parts) - 1
                node = Node(name, parent=parent, kind=kind if last else "folder", doc_path=key)
                index[key] = node
            parent = node
        return parent

    def add(unit: Unit) -> None:
        if isinstance(unit, FileUnit):
            node = node_for(unit.path, "file")
            if node is not None:
                node.content = _content_kind(unit)
        else:
            node_for(unit.path, "folder")

    for line in lines:
        for unit in parser.feed(line):
            add(unit)
        if parser.base_folder is not None and root.name == ROOT_PLACEHOLDER:
            root.name = parser.base_folder
    for unit in parser.close():
        add(unit)

    return root


def draw_document_tree(root: Node) -> str:
    """
    Render a tree built by :func:`document_tree` as text.

    Folders get a trailing ``/``; files whose content is not embedded get
    their content kind in brackets, e.g. ``logo.png [binary_file_path]``.
    """
    out: list[str] = []
    for pre, _, node in RenderTree(root, style=ContStyle()):
        label = node.name
        if node.kind == "folder" and node is not root:
            label += "/"
        content = getattr(node, "content", "text")
        if node.kind == "file" and content != "text":
            label += f" [{content}]"
        out.append(f"{pre}{label}")
    return "\n".join(out)
