"""Command-line interface for the guided reader overlay engine.

WHY: Editors preparing texts want to check how annotations and caption
highlights will look before publishing. Doing that from the terminal,
without running the reading interface, makes problems in the offsets or
the caption track easy to spot and script.

HOW: argparse subcommands, each a thin wrapper over the core:
  render    — text (+ annotation JSON) → rendered markup
  captions  — WEBVTT file → caption entries as JSON
  highlight — text + WEBVTT + playback time → markup with the highlight
  fetch     — load a text from the text API and render it
  serve     — run the HTTP API with uvicorn
Results go to stdout; status and errors go to stderr.

RULES:
- "-" as an input path reads stdin
- Annotation files hold a JSON list of {"id", "start", "end"} objects
- --verbose enables DEBUG logging for the guided_reader package
- Exit code 1 on bad input files, 130 on Ctrl-C
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from guided_reader import __version__
from guided_reader.api.client import ReaderClient
from guided_reader.core.captions import parse_vtt
from guided_reader.core.ir import AnnotationInterval
from guided_reader.core.overlay import render_annotated_text
from guided_reader.core.session import ReaderSession


def _status(msg: str) -> None:
    """Print a status message to stderr so stdout stays pipeable."""
    print(msg, file=sys.stderr, flush=True)


def _fail(msg: str) -> None:
    print("Error: {}".format(msg), file=sys.stderr)
    sys.exit(1)


def _read_input(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    file_path = Path(path)
    if not file_path.is_file():
        _fail("File not found: {}".format(path))
    return file_path.read_text(encoding="utf-8")


def _load_annotations(path: Optional[str]) -> List[AnnotationInterval]:
    if not path:
        return []
    try:
        data = json.loads(_read_input(path))
    except json.JSONDecodeError as exc:
        _fail("Annotation file {} is not valid JSON: {}".format(path, exc))
    if not isinstance(data, list):
        _fail("Annotation file {} must contain a JSON list".format(path))
    try:
        return [AnnotationInterval.from_dict(item) for item in data]
    except (KeyError, TypeError, ValueError) as exc:
        _fail("Bad annotation in {}: {}".format(path, exc))


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_render(args: argparse.Namespace) -> None:
    overlay = render_annotated_text(_read_input(args.text_file), _load_annotations(args.annotations))
    if args.json:
        _print_json({
            "markup": overlay.markup,
            "runs": [
                {"kind": r.kind, "run_id": r.run_id, "text": r.text, "start": r.start, "end": r.end}
                for r in overlay.runs
            ],
        })
    else:
        print(overlay.markup)


def _cmd_captions(args: argparse.Namespace) -> None:
    entries = parse_vtt(_read_input(args.vtt_file))
    _status("Parsed {} caption entries".format(len(entries)))
    _print_json([{"start": e.start, "end": e.end, "text": e.text} for e in entries])


def _cmd_highlight(args: argparse.Namespace) -> None:
    session = ReaderSession()
    session.load_text(-1, _read_input(args.text_file), _load_annotations(args.annotations))
    session.set_captions(parse_vtt(_read_input(args.vtt_file)))
    session.on_tick(args.time, playing=True)
    active = session.highlights.current
    if active is None:
        _status("No caption active at {}s".format(args.time))
    else:
        _status("Active caption: {!r}".format(active.text))
    print(session.markup)


async def _fetch(args: argparse.Namespace) -> Optional[str]:
    session = ReaderSession()
    async with ReaderClient(base_url=args.base_url) as client:
        overlay = await session.open_text(client, args.text_object_id, args.language)
    if overlay is None:
        return None
    if args.time is not None:
        session.on_tick(args.time, playing=True)
    return session.markup


def _cmd_fetch(args: argparse.Namespace) -> None:
    markup = asyncio.run(_fetch(args))
    if markup is None:
        _fail("Could not load text {} ({})".format(args.text_object_id, args.language))
    print(markup)


def _cmd_serve(args: argparse.Namespace) -> None:
    from guided_reader.server.app import run_api

    _status("Serving on http://{}:{}".format(args.host, args.port))
    run_api(host=args.host, port=args.port)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    Separate from main() so tests can inspect the parser without running
    a command.
    """
    parser = argparse.ArgumentParser(
        prog="guided-reader",
        description="Render annotated texts, parse caption tracks and preview "
                    "playback highlights.",
    )
    parser.add_argument("--version", action="version", version="%(prog)s " + __version__)
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    render = subparsers.add_parser("render", help="Render a text with its annotations.")
    render.add_argument("text_file", help="Text file (HTML allowed), or - for stdin.")
    render.add_argument("--annotations", default=None, help="JSON file of annotation intervals.")
    render.add_argument("--json", action="store_true", help="Print markup and runs as JSON.")
    render.set_defaults(func=_cmd_render)

    captions = subparsers.add_parser("captions", help="Parse a WEBVTT caption track.")
    captions.add_argument("vtt_file", help="WEBVTT file, or - for stdin.")
    captions.set_defaults(func=_cmd_captions)

    highlight = subparsers.add_parser("highlight", help="Preview the highlight at a playback time.")
    highlight.add_argument("text_file", help="Text file (HTML allowed).")
    highlight.add_argument("vtt_file", help="WEBVTT file.")
    highlight.add_argument("--time", type=float, required=True, help="Playback time in seconds.")
    highlight.add_argument("--annotations", default=None, help="JSON file of annotation intervals.")
    highlight.set_defaults(func=_cmd_highlight)

    fetch = subparsers.add_parser("fetch", help="Load a text from the text API and render it.")
    fetch.add_argument("text_object_id", type=int, help="Id shared by the text's languages.")
    fetch.add_argument("language", help="Language code of the version to load.")
    fetch.add_argument("--base-url", default=None, help="Text API base URL.")
    fetch.add_argument("--time", type=float, default=None, help="Also highlight at this time.")
    fetch.set_defaults(func=_cmd_fetch)

    serve = subparsers.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="0.0.0.0", help="Bind address (default: %(default)s).")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: %(default)s).")
    serve.set_defaults(func=_cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the guided-reader console script.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        args.func(args)
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)


if __name__ == "__main__":
    main()
