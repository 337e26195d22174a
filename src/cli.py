import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

from config import LivescribeConfig
from log_format import ColoredFormatter

ENV_FILE_PATH = Path.home() / ".config" / "livescribe" / "env"


def _load_env_file(path: Path = ENV_FILE_PATH) -> None:
    if not path.exists():
        return
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key not in os.environ:
                os.environ[key] = value


def _setup_logging(verbose: bool, log_file: str) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO

    console = logging.StreamHandler()
    console.setFormatter(ColoredFormatter(datefmt="%H:%M:%S"))
    handlers: list[logging.Handler] = [console]

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file)
        except OSError as exc:
            print(f"Cannot open log file {log_file}: {exc}", file=sys.stderr)
        else:
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s")
            )
            handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    if verbose:
        logging.getLogger("websockets").setLevel(logging.INFO)
        logging.getLogger("httpcore").setLevel(logging.INFO)
        logging.getLogger("httpx").setLevel(logging.INFO)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Live video audio transcription service")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the live transcription server (default)")
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Bind port")

    listen_parser = subparsers.add_parser("listen", help="Stream live transcripts for a URL from a running server")
    listen_parser.add_argument("url", help="Live video URL")
    listen_parser.add_argument("--language", help="Spoken language code")
    listen_parser.add_argument("--server", help="Server WebSocket URL")

    transcribe_parser = subparsers.add_parser("transcribe", help="Transcribe a recorded video once")
    transcribe_parser.add_argument("url", help="Video URL")
    transcribe_parser.add_argument("--language", help="Spoken language code")

    subparsers.add_parser("check", help="Run startup health checks")

    return parser


def main() -> None:
    _load_env_file()
    args = build_parser().parse_args()

    config = LivescribeConfig()
    _setup_logging(args.verbose, config.log_file)

    if args.command == "listen":
        if args.server:
            config.server_url = args.server
        sys.exit(asyncio.run(_run_listen(config, args.url, args.language or config.default_language)))
    elif args.command == "transcribe":
        sys.exit(asyncio.run(_run_transcribe(config, args.url, args.language or config.default_language)))
    elif args.command == "check":
        sys.exit(_run_check(config))
    else:
        if getattr(args, "host", None):
            config.host = args.host
        if getattr(args, "port", None):
            config.port = args.port
        asyncio.run(_run_server(config))


def _run_check(config: LivescribeConfig) -> int:
    from health import run_startup_checks, has_critical_failures

    results = run_startup_checks(config)
    return 1 if has_critical_failures(results) else 0


async def _run_server(config: LivescribeConfig) -> None:
    from health import run_startup_checks, has_critical_failures
    from factory import create_server

    results = run_startup_checks(config)
    if has_critical_failures(results):
        logging.error("Critical health check failures, aborting startup")
        sys.exit(1)

    server = create_server(config)

    shutdown_event = asyncio.Event()
    shutdown_triggered = False

    def handle_signal() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            logging.warning("Forced exit")
            sys.exit(1)
        shutdown_triggered = True
        logging.info("Shutting down...")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    await server.start()
    try:
        await shutdown_event.wait()
    finally:
        await server.stop()


async def _run_listen(config: LivescribeConfig, url: str, language: str) -> int:
    from domain.connection import TranscriptionMessage
    from domain.errors import ChannelLost, InvalidRequest, MaxReconnectAttemptsReached
    from domain.platform import validate_url
    from factory import create_connection_manager

    try:
        url = validate_url(url)
    except InvalidRequest as exc:
        logging.error("%s", exc)
        return 2

    def on_transcription(message: TranscriptionMessage) -> None:
        print(f"[{message.sequence}] {message.text}", flush=True)

    def on_status(message: str) -> None:
        logging.info("Status: %s", message)
        if not manager.live:
            asyncio.ensure_future(manager.close())

    def on_error(error: str, details: str | None) -> None:
        logging.error("%s: %s", error, details or "")
        if not manager.live:
            asyncio.ensure_future(manager.close())

    manager = create_connection_manager(
        config,
        on_transcription=on_transcription,
        on_status=on_status,
        on_error=on_error,
    )

    loop = asyncio.get_running_loop()

    async def shutdown() -> None:
        await manager.stop_live()
        await manager.close()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: asyncio.ensure_future(shutdown()))

    try:
        await manager.start_live(url, language)
        await manager.run()
    except MaxReconnectAttemptsReached as exc:
        logging.error("%s", exc)
        return 1
    except ChannelLost as exc:
        logging.error("Cannot reach server at %s: %s", config.server_url, exc)
        return 1
    return 0


async def _run_transcribe(config: LivescribeConfig, url: str, language: str) -> int:
    from domain.errors import LivescribeError
    from domain.recorded import transcribe_recorded
    from factory import create_dispatcher, create_source_factory

    dispatcher = create_dispatcher(config)
    source = create_source_factory(config)()
    try:
        result = await transcribe_recorded(
            source,
            dispatcher,
            url,
            language=language,
            chunk_duration_seconds=config.chunk_duration_seconds,
        )
    except LivescribeError as exc:
        logging.error("Transcription failed: %s", exc)
        return 1
    finally:
        await dispatcher.shutdown()

    print(result.text)
    return 0
