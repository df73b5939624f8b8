"""CLI entry point for LensLingua."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import sys

from dotenv import load_dotenv

from .capture.camera import CameraSession
from .capture.microphone import Microphone
from .config import load_config
from .controller import AppController, Outcome
from .db import HistoryStore, SQLiteKeyValueStore, UserStore
from .extraction import create_backend
from .models import SUPPORTED_LANGUAGES, ExtractedItem, HistoryItem


_KIND_ICONS = {"scan": "📷", "audio": "🎙"}


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="lenslingua",
        description="LensLingua: translate menus, labels and speech with a multimodal AI model",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to the config file (TOML)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Show informational logs"
    )

    sub = parser.add_subparsers(dest="command")

    # languages / cameras
    sub.add_parser("languages", help="List supported target languages")
    sub.add_parser("cameras", help="List available cameras")

    # signup
    signup_parser = sub.add_parser("signup", help="Create an account")
    _add_account_args(signup_parser)

    # scan
    scan_parser = sub.add_parser("scan", help="Translate an image (file or camera)")
    _add_account_args(scan_parser)
    scan_parser.add_argument("--image", type=str, help="Use an existing image file")
    scan_parser.add_argument("--lang", type=str, default=None, help="Target language")
    scan_parser.add_argument("--json", action="store_true", help="Print results as JSON")

    # listen
    listen_parser = sub.add_parser("listen", help="Translate speech (file or microphone)")
    _add_account_args(listen_parser)
    listen_parser.add_argument("--audio", type=str, help="Use an existing audio file")
    listen_parser.add_argument(
        "--seconds", type=float, default=None, help="Microphone recording length"
    )
    listen_parser.add_argument("--lang", type=str, default=None, help="Target language")
    listen_parser.add_argument("--json", action="store_true", help="Print results as JSON")

    # history
    history_parser = sub.add_parser("history", help="List your past translations")
    _add_account_args(history_parser)
    history_parser.add_argument("--json", action="store_true", help="Print as JSON")

    show_parser = sub.add_parser("show", help="Show one past translation")
    _add_account_args(show_parser)
    show_parser.add_argument("record_id", type=str)
    show_parser.add_argument("--json", action="store_true", help="Print results as JSON")

    delete_parser = sub.add_parser("delete", help="Delete one past translation")
    _add_account_args(delete_parser)
    delete_parser.add_argument("record_id", type=str)

    clear_parser = sub.add_parser("clear", help="Delete all of your history")
    _add_account_args(clear_parser)
    clear_parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    load_dotenv()

    config = load_config(args.config)

    match args.command:
        case "languages":
            _cmd_languages()
            return
        case "cameras":
            _cmd_cameras()
            return

    store = SQLiteKeyValueStore(config.storage.path)
    try:
        controller = _build_controller(config, store, args.command)
        ok = _dispatch(controller, args, config.capture.record_seconds)
    finally:
        store.close()
    if not ok:
        sys.exit(1)


def _add_account_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--email", "-e", type=str, required=True, help="Account email")
    p.add_argument(
        "--password", "-p", type=str, default=None,
        help="Account password (prompted if omitted)",
    )


def _build_controller(config, store, command: str) -> AppController:
    users = UserStore(store, max_write_attempts=config.storage.max_write_attempts)
    history = HistoryStore(store, max_write_attempts=config.storage.max_write_attempts)
    backend = create_backend(config) if command in ("scan", "listen") else None
    cap = config.capture
    return AppController(
        users,
        history,
        backend,
        camera_factory=lambda: CameraSession(
            cap.camera_index,
            max_dimension=cap.max_dimension,
            jpeg_quality=cap.jpeg_quality,
        ),
        microphone=Microphone(sample_rate=cap.sample_rate),
        target_language=config.app.target_language,
        max_upload_mb=config.extraction.max_upload_mb,
        max_dimension=cap.max_dimension,
        jpeg_quality=cap.jpeg_quality,
    )


def _dispatch(controller: AppController, args, record_seconds: float) -> bool:
    password = args.password or getpass.getpass("Password: ")

    if args.command == "signup":
        outcome = controller.sign_up(args.email, password)
        if not outcome.ok:
            return _report(outcome)
        print(f"Account created for {args.email.strip().lower()}")
        return True

    outcome = controller.sign_in(args.email, password)
    if not outcome.ok:
        return _report(outcome)

    match args.command:
        case "scan":
            return asyncio.run(_cmd_scan(controller, args))
        case "listen":
            return asyncio.run(_cmd_listen(controller, args, args.seconds or record_seconds))
        case "history":
            return _cmd_history(controller, args)
        case "show":
            outcome = controller.open_record(args.record_id)
            if not outcome.ok:
                return _report(outcome)
            _print_results(controller, args.json)
            return True
        case "delete":
            outcome = controller.delete_record(args.record_id)
            if not outcome.ok:
                return _report(outcome)
            if outcome.removed:
                print(f"Deleted {args.record_id}")
            else:
                print(f"No record {args.record_id} in your history.")
            return True
        case "clear":
            if not args.yes:
                answer = input("Permanently delete ALL your translation history? [y/N] ")
                if answer.strip().lower() not in ("y", "yes"):
                    print("Cancelled.")
                    return True
            outcome = controller.clear_history()
            if not outcome.ok:
                return _report(outcome)
            print(f"Deleted {outcome.removed} record(s).")
            return True
    return False


def _cmd_languages() -> None:
    for code, name in SUPPORTED_LANGUAGES:
        print(f"  {code:<4} {name}")


def _cmd_cameras() -> None:
    cameras = CameraSession.list_cameras()
    if not cameras:
        print("No cameras found.")
        return
    print(f"Available cameras: {len(cameras)}")
    for idx in cameras:
        print(f"  camera {idx}")


async def _cmd_scan(controller: AppController, args) -> bool:
    if args.lang and not _apply_language(controller, args.lang):
        return False

    if args.image:
        print("🔍 Reading image...", file=sys.stderr)
        outcome = await controller.translate_image_file(args.image)
    else:
        print("📷 Capturing...", file=sys.stderr)
        outcome = await controller.translate_camera()

    if not outcome.ok:
        return _report(outcome)
    _print_results(controller, args.json)
    return True


async def _cmd_listen(controller: AppController, args, seconds: float) -> bool:
    if args.lang and not _apply_language(controller, args.lang):
        return False

    if args.audio:
        outcome = await controller.translate_audio_file(args.audio)
    else:
        print(f"🎙 Recording for {seconds:g}s...", file=sys.stderr)
        outcome = await controller.translate_microphone(seconds)

    if not outcome.ok:
        return _report(outcome)
    _print_results(controller, args.json)
    return True


def _cmd_history(controller: AppController, args) -> bool:
    records = controller.history()
    if args.json:
        print(json.dumps([r.to_dict() for r in records], ensure_ascii=False, indent=2))
        return True
    if not records:
        print("No history yet.")
        return True
    for record in records:
        print(_format_record_line(record))
    return True


def _apply_language(controller: AppController, value: str) -> bool:
    outcome = controller.set_target_language(value)
    if not outcome.ok:
        return _report(outcome)
    return True


def _report(outcome: Outcome) -> bool:
    print(f"Error [{outcome.error_kind}]: {outcome.message}", file=sys.stderr)
    return False


def _format_record_line(record: HistoryItem) -> str:
    icon = _KIND_ICONS.get(record.kind, "•")
    first = record.items[0].original_text if record.items else ""
    if len(first) > 40:
        first = first[:37] + "..."
    return (
        f"{icon} {record.id}  {record.created_at[:19]}  "
        f"→ {record.target_language:<10} {len(record.items)} item(s)  {first}"
    )


def _format_item(item: ExtractedItem) -> str:
    lines = [f"  {item.original_text}", f"    → {item.translated_text}"]
    if item.context:
        lines.append(f"    {item.context}")
    if item.allergens.strip():
        lines.append(f"    ⚠ Allergens: {item.allergens}")
    return "\n".join(lines)


def _print_results(controller: AppController, as_json: bool) -> None:
    if as_json:
        print(controller.export_results_json())
        return
    print(f"\n🌐 {controller.target_language} ({len(controller.results)} item(s))")
    for item in controller.results:
        print(_format_item(item))
    if controller.active_record_id:
        print(f"\nSaved as {controller.active_record_id}")
