from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import replace
from pathlib import Path

from .commands import MemoCommands
from .config import Settings, load_settings
from .selection import Selection
from .service import ImportService

LOGGER = logging.getLogger("cli")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )


def build_settings(args: argparse.Namespace) -> Settings:
    settings = load_settings()
    overrides = {}
    if args.db:
        overrides["db_path"] = Path(args.db).expanduser()
    if getattr(args, "glob", None):
        overrides["memos_glob"] = args.glob
    if getattr(args, "transcription_concurrency", None):
        overrides["transcription_concurrency"] = args.transcription_concurrency
    if getattr(args, "labelling_concurrency", None):
        overrides["labelling_concurrency"] = args.labelling_concurrency

    if overrides:
        settings = replace(settings, **overrides)
    return settings


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return value


def _preview(content: str, width: int = 60) -> str:
    flat = " ".join(content.split())
    if len(flat) > width:
        return flat[: width - 1] + "…"
    return flat


def _import(args: argparse.Namespace, settings: Settings) -> int:
    service = ImportService(settings, show_progress=not args.no_progress)
    try:
        service.run(label=not args.no_label)
        if not args.watch:
            return 0

        service.start_watching(label=not args.no_label)
        LOGGER.info("Backlog synced. Watching for new recordings. Press Ctrl+C to exit.")
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            LOGGER.info("Interrupted by user.")
        finally:
            service.stop_watching()
        return 0
    finally:
        service.close()


def _list(args: argparse.Namespace, commands: MemoCommands) -> int:
    memos = commands.load()
    if args.label:
        memos = [memo for memo in memos if memo.label == args.label]
    if args.unlabelled:
        memos = [memo for memo in memos if memo.label is None]

    if not memos:
        LOGGER.info("No memos found.")
        return 0

    print(f"{'Label':12}  {'File':30}  Content")
    print("-" * 110)
    for memo in memos:
        files = memo.parts or [memo.name]
        print(f"{memo.label or '-':12}  {files[0][:30]:30}  {_preview(memo.content)}")
        for extra in files[1:]:
            print(f"{'':12}  {extra[:30]:30}")
    print(f"Total: {len(memos)}")
    return 0


def _show(args: argparse.Namespace, commands: MemoCommands) -> int:
    selection = Selection(commands.load())
    known = {row.name for row in selection.rows}
    missing = [name for name in args.names if name not in known]
    if missing:
        LOGGER.error("Memo not found: %s", ", ".join(missing))
        return 1
    for index, row in enumerate(selection.rows):
        if row.name in args.names:
            selection.focus_at(index)
            selection.toggle_mark()
    print(selection.copy_text())
    return 0


def _edit(args: argparse.Namespace, commands: MemoCommands) -> int:
    if args.file:
        content = Path(args.file).read_text(encoding="utf-8")
    else:
        content = sys.stdin.read()
    commands.set_content(args.name, content.rstrip("\n"))
    LOGGER.info("Updated %s", args.name)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage transcribed voice memos.")
    parser.add_argument("--db", help="Memo database (default from MEMOS_DB or 'memos.sqlite').")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING...). Default: INFO.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Transcribe new recordings and label unlabelled memos.")
    imp.add_argument("--glob", help="Glob for recordings (default from VOICE_MEMOS_GLOB).")
    imp.add_argument("--watch", action="store_true", help="Keep running and import new recordings.")
    imp.add_argument("--no-label", action="store_true", help="Skip the labelling pass.")
    imp.add_argument("--no-progress", action="store_true", help="Do not show the progress spinner.")
    imp.add_argument("--transcription-concurrency", type=_positive_int, help="Parallel transcriptions.")
    imp.add_argument("--labelling-concurrency", type=_positive_int, help="Parallel labelling requests.")

    lst = sub.add_parser("list", help="List memos.")
    lst.add_argument("--label", help="Only memos with this label.")
    lst.add_argument("--unlabelled", action="store_true", help="Only memos without a label.")

    show = sub.add_parser("show", help="Print memo contents, separated by blank lines.")
    show.add_argument("names", nargs="+")

    kill = sub.add_parser("kill", help="Delete memos.")
    kill.add_argument("names", nargs="+")

    merge = sub.add_parser("merge", help="Merge several memos into one.")
    merge.add_argument("names", nargs="+")

    edit = sub.add_parser("edit", help="Replace a memo's content (from --file or stdin).")
    edit.add_argument("name")
    edit.add_argument("--file", help="Read the new content from this file.")

    label = sub.add_parser("label", help="Set a memo's label.")
    label.add_argument("name")
    label.add_argument("label")

    play = sub.add_parser("play", help="Play the recordings behind memos.")
    play.add_argument("names", nargs="+")

    things = sub.add_parser("things", help="Add memos to the Things inbox.")
    things.add_argument("names", nargs="+")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)

    try:
        settings = build_settings(args)
    except Exception as err:
        LOGGER.error("%s", err)
        return 1

    if args.command == "import":
        try:
            return _import(args, settings)
        except Exception as err:
            LOGGER.error("%s", err)
            return 1

    try:
        commands = MemoCommands(settings)
    except Exception as err:
        LOGGER.error("%s", err)
        return 1

    try:
        if args.command == "list":
            return _list(args, commands)
        if args.command == "show":
            return _show(args, commands)
        if args.command == "kill":
            commands.kill(args.names)
        elif args.command == "merge":
            merged = commands.merge(args.names)
            if merged is None:
                LOGGER.warning("Merging needs at least two memos.")
                return 1
            print(merged.name)
        elif args.command == "edit":
            return _edit(args, commands)
        elif args.command == "label":
            commands.set_label(args.name, args.label)
        elif args.command == "play":
            commands.open(args.names)
        elif args.command == "things":
            commands.add_to_things(args.names)
    except Exception as err:
        LOGGER.error("%s", err)
        return 1
    finally:
        commands.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
