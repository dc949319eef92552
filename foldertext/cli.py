# foldertext/cli.py

"""Command line entry point: ``foldertext encode|decode|verify|tree``."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from foldertext.compare import trees_identical
from foldertext.config import EncoderConfig
from foldertext.decode import decode_file, iter_document_lines
from foldertext.encode import encode_to_file
from foldertext.errors import FatalInputError
from foldertext.log import configure_logging, get_logger
from foldertext.tree import document_tree, draw_document_tree

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="foldertext",
        description="Convert a directory tree to a single text document and back.",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--log-json", action="store_true", help="Emit logs as JSON lines")
    sub = parser.add_subparsers(dest="command", required=True)

    enc = sub.add_parser("encode", help="Encode a directory into a text document")
    enc.add_argument("source", type=Path, help="Directory to encode")
    enc.add_argument("output", type=Path, help="Document to write")
    enc.add_argument(
        "--exclude",
        "-x",
        action="append",
        default=[],
        metavar="NAME",
        help="Additional directory name to exclude (repeatable)",
    )

    dec = sub.add_parser("decode", help="Rebuild a directory from a text document")
    dec.add_argument("document", type=Path, help="Document to read")
    dec.add_argument("destination", type=Path, help="Directory to rebuild into")
    mode = dec.add_mutually_exclusive_group()
    mode.add_argument(
        "--stream", dest="streaming", action="store_const", const=True, default=None,
        help="Read the document line by line",
    )
    mode.add_argument(
        "--in-memory", dest="streaming", action="store_const", const=False,
        help="Load the whole document before decoding",
    )

    ver = sub.add_parser("verify", help="Check that two directory trees are identical")
    ver.add_argument("left", type=Path)
    ver.add_argument("right", type=Path)

    tre = sub.add_parser("tree", help="Print the tree stored in a document")
    tre.add_argument("document", type=Path)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, json=args.log_json)

    try:
        if args.command == "encode":
            config = EncoderConfig().with_excluded(*args.exclude)
            encode_to_file(args.source, args.output, config)
            print(args.output)
            return 0

        if args.command == "decode":
            stats = decode_file(args.document, args.destination, streaming=args.streaming)
            return 0 if stats.errors == 0 else 2

        if args.command == "verify":
            identical = trees_identical(args.left, args.right)
            print("identical" if identical else "different")
            return 0 if identical else 1

        if not args.document.is_file():
            raise FatalInputError(f"Input file does not exist: {args.document}")
        print(draw_document_tree(document_tree(iter_document_lines(args.document))))
        return 0
    except FatalInputError as exc:
        logger.error("fatal", command=args.command, error=str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
