#!/usr/bin/env python3
"""CLI entry point for oc-notifier.

Connects to an OpenCode server's SSE stream and sends push notifications
when sessions transition to idle state or ask a question.

Usage:
    python -m oc_notifier [OPTIONS]
    oc-notifier [OPTIONS]

Options:
    -c, --config PATH       Path to config file (default: ./config.json)
    --debounce-ms MS        Override debounceMs from the config file
    -v, --verbose           Enable verbose logging
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .errors import ConfigError


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="oc-notifier",
        description="OpenCode session idle notifier",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Start with ./config.json
    oc-notifier

    # Explicit config file
    oc-notifier --config /path/to/config.json

    # Notify sooner after a session goes idle
    oc-notifier --debounce-ms 1000

Environment Variables:
    OC_NOTIFIER_CONFIG       Override default config path (./config.json)
    OC_NOTIFIER_DEBOUNCE_MS  Override debounceMs from the config file
""",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path(os.environ.get("OC_NOTIFIER_CONFIG", "./config.json")),
        help="Path to config file (default: ./config.json, env: OC_NOTIFIER_CONFIG)",
    )

    debounce_env = os.environ.get("OC_NOTIFIER_DEBOUNCE_MS")
    parser.add_argument(
        "--debounce-ms",
        type=float,
        default=float(debounce_env) if debounce_env else None,
        help="Milliseconds to wait after idle before notifying (default: from config)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)
    if args.debounce_ms is not None and args.debounce_ms < 0:
        parser.error("--debounce-ms must be non-negative")
    return args


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
    # aiohttp access/client chatter is only useful when debugging it
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


async def main_async(args: argparse.Namespace) -> int:
    """Async main entry point."""
    # Import here to speed up --help
    import aiohttp

    from .config import load_config
    from .idle_monitor import IdleMonitor
    from .notifier import Notifier
    from .providers import create_providers
    from .session_info import SessionInfoClient
    from .session_tracker import SessionStateTracker
    from .sse_client import SSEClient

    logger = logging.getLogger("oc-notifier")
    logger.info(f"Starting oc-notifier v{__version__}")
    logger.info(f"Loading config from {args.config}...")

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    debounce_ms = args.debounce_ms if args.debounce_ms is not None else config.debounce_ms

    async with aiohttp.ClientSession() as http:
        notifier = Notifier(create_providers(config.providers, http))
        tracker = SessionStateTracker()
        session_info = SessionInfoClient(
            config.opencode, http, cache=config.cache_session_info
        )
        monitor = IdleMonitor(
            tracker=tracker,
            session_info=session_info,
            notifier=notifier,
            desktop_base_url=config.opencode.desktop_base_url,
            debounce_sec=debounce_ms / 1000.0,
            notify_on_question=config.notify_on_question,
        )

        client = SSEClient(config.opencode, http)
        client.on_session_status(monitor.handle_session_status)
        client.on_message_part(monitor.handle_message_part)

        # Setup signal handlers for graceful shutdown
        loop = asyncio.get_running_loop()
        shutdown_event = asyncio.Event()

        def handle_signal(signum: int) -> None:
            logger.info(f"Received signal {signum}, shutting down...")
            shutdown_event.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

        client_task = None
        try:
            await tracker.start()
            logger.info(f"Debounce window {debounce_ms:.0f}ms")

            client_task = asyncio.create_task(client.start())
            shutdown_task = asyncio.create_task(shutdown_event.wait())

            # Wait for shutdown signal (or the client dying on its own)
            done, _ = await asyncio.wait(
                {client_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED
            )
            shutdown_task.cancel()
            if client_task in done and client_task.exception() is not None:
                raise client_task.exception()

        except Exception as e:
            logger.error(f"Service error: {e}", exc_info=True)
            return 1

        finally:
            # Graceful shutdown
            logger.info("Shutting down...")
            await client.stop()
            if client_task is not None:
                await asyncio.gather(client_task, return_exceptions=True)
            await monitor.stop()
            await tracker.stop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)

    return 0


def main() -> None:
    """Main entry point."""
    args = parse_args()
    setup_logging(args.verbose)

    try:
        exit_code = asyncio.run(main_async(args))
        sys.exit(exit_code)
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
