"""Command-line interface for the CTF administration service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence


def _running_in_virtualenv() -> bool:
    """Return ``True`` when the current interpreter is executing inside a venv."""

    base_prefix = getattr(sys, "base_prefix", sys.prefix)
    return sys.prefix != base_prefix


def _bootstrap_virtualenv() -> None:
    """Re-exec the script using the bundled virtualenv interpreter when available."""

    if _running_in_virtualenv():
        return

    root = Path(__file__).resolve().parent
    venv_dir = root / ".venv"
    if not venv_dir.is_dir():
        return

    candidates = (
        venv_dir / "bin" / "python",
        venv_dir / "bin" / "python3",
        venv_dir / "Scripts" / "python.exe",
        venv_dir / "Scripts" / "python",
    )

    script = str(Path(__file__).resolve())
    for candidate in candidates:
        if candidate.exists():
            os.execv(str(candidate), [str(candidate), script, *sys.argv[1:]])


if __name__ == "__main__":
    _bootstrap_virtualenv()

import anyio

from ctfadmin.client import NoticeAPI, NoticeAPIError
from ctfadmin.config import AdminSettings, load_settings
from ctfadmin.database import Database
from ctfadmin.models import Notice
from ctfadmin.notices import ERROR, NoticeCacheController, Notification

logger = logging.getLogger("ctfadmin.main")

_DEFAULT_SERVICE_URL = "http://localhost:8000"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="CTF administration utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    config_help = "Path to the YAML settings file (default: CTFADMIN_CONFIG or config/settings.yaml)"

    init_parser = subparsers.add_parser("init-db", help="Initialise the administration database")
    init_parser.add_argument("--config", default=None, help=config_help)

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP administration service")
    serve_parser.add_argument("--config", default=None, help=config_help)
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the API (default: 8000)",
    )
    serve_parser.add_argument(
        "--ssl-certfile",
        default=None,
        help="Path to the TLS certificate chain in PEM format",
    )
    serve_parser.add_argument(
        "--ssl-keyfile",
        default=None,
        help="Path to the TLS private key in PEM format",
    )

    notices_parser = subparsers.add_parser(
        "notices", help="Manage notices on a running service from the terminal"
    )
    notices_parser.add_argument(
        "--service-url",
        default=None,
        help="Base URL of a running service (default: CTFADMIN_SERVICE_URL or http://localhost:8000)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "notices"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load_settings(config: str | None) -> AdminSettings:
    return load_settings(Path(config).expanduser() if config else None)


def _initialise_database(settings: AdminSettings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(
    *,
    settings: AdminSettings,
    database: Database,
    host: str,
    port: int,
    ssl_certfile: str | None,
    ssl_keyfile: str | None,
) -> None:
    from ctfadmin.application import create_application
    import uvicorn

    if bool(ssl_certfile) ^ bool(ssl_keyfile):
        raise SystemExit("Both --ssl-certfile and --ssl-keyfile must be provided together.")

    protocol = "https" if ssl_certfile and ssl_keyfile else "http"
    logger.info("Starting administration API on %s://%s:%s", protocol, host, port)

    app = create_application(settings=settings, database=database)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
        ssl_certfile=ssl_certfile,
        ssl_keyfile=ssl_keyfile,
    )


def _print_notification(notification: Notification) -> None:
    prefix = "!!" if notification.level == ERROR else "ok"
    if notification.title:
        print(f"[{prefix}] {notification.title}: {notification.message}")
    else:
        print(f"[{prefix}] {notification.message}")


def _print_notices(notices: Sequence[Notice]) -> None:
    if not notices:
        print("No notices have been published.")
        return
    for index, notice in enumerate(notices, start=1):
        marker = "*" if notice.is_pinned else " "
        stamp = notice.time.strftime("%Y-%m-%d %H:%M")
        print(f"{index:>3}{marker} [{stamp}] {notice.title}")


def _pick(notices: Sequence[Notice], raw: str) -> Notice | None:
    try:
        index = int(raw)
    except ValueError:
        print("Enter the number shown next to the notice.")
        return None
    if not 1 <= index <= len(notices):
        print("No notice with that number.")
        return None
    return notices[index - 1]


async def _prompt(text: str) -> str:
    return (await anyio.to_thread.run_sync(input, text)).strip()


async def _edit_notice(controller: NoticeCacheController, existing: Notice | None) -> None:
    title = await _prompt(f"Title [{existing.title}]: " if existing else "Title: ")
    content = await _prompt("Content (blank keeps current): " if existing else "Content: ")
    if existing is None:
        if not title or not content:
            print("Title and content are required; nothing saved.")
            return
        draft = Notice(id=None, title=title, content=content, is_pinned=False, time=datetime.now(timezone.utc))
    else:
        draft = Notice(
            id=existing.id,
            title=title or existing.title,
            content=content or existing.content,
            is_pinned=existing.is_pinned,
            time=existing.time,
        )
    try:
        await controller.save(draft)
    except NoticeAPIError:
        return


async def _notice_console(service_url: str, api_key: str) -> None:
    api = NoticeAPI(service_url.rstrip("/") + "/api", api_key)
    async with NoticeCacheController(api, notify=_print_notification) as controller:
        try:
            await controller.load()
        except NoticeAPIError:
            return

        while True:
            ordered = controller.ordered()
            print()
            _print_notices(ordered)
            print("Commands: p <n> pin/unpin, d <n> delete, e <n> edit, n new, r reload, q quit")
            command, _, argument = (await _prompt("> ")).partition(" ")

            if command == "q":
                return
            if command == "n":
                await _edit_notice(controller, None)
            elif command == "r":
                try:
                    await controller.load()
                except NoticeAPIError:
                    continue
            elif command in {"p", "d", "e"}:
                notice = _pick(ordered, argument.strip())
                if notice is None:
                    continue
                if command == "p":
                    await controller.pin(notice)
                elif command == "e":
                    await _edit_notice(controller, notice)
                else:
                    pending = controller.request_delete(notice)
                    if pending is None:
                        continue
                    answer = await _prompt(f"{pending.title}: {pending.message} [y/N] ")
                    if answer.lower() in {"y", "yes"}:
                        await controller.confirm_delete(pending)
            else:
                print("Unknown command.")


def _run_notice_console(service_url: str | None) -> None:
    url = service_url or os.getenv("CTFADMIN_SERVICE_URL") or _DEFAULT_SERVICE_URL
    api_key = os.getenv("CTFADMIN_API_KEY")
    if not api_key:
        raise SystemExit("Set CTFADMIN_API_KEY to an administrator API key before managing notices.")

    try:
        anyio.run(_notice_console, url, api_key)
    except KeyboardInterrupt:
        print("\nExiting notice console.")


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)

    if args.command == "notices":
        _run_notice_console(args.service_url)
        return

    settings = _load_settings(getattr(args, "config", None))
    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(
            settings=settings,
            database=database,
            host=args.host,
            port=args.port,
            ssl_certfile=args.ssl_certfile,
            ssl_keyfile=args.ssl_keyfile,
        )
    elif args.command == "init-db":
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
