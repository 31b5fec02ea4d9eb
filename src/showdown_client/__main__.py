"""Headless runner for the Showdown client.

Usage:
    python -m showdown_client
    showdown-client

Connects to the chat server, logs every event published on the bus and runs
until the connection closes.

Environment Variables:
    PS_SERVER_URL: WebSocket URL of the chat server
    PS_LOGINSERVER_URL: Base URL of the credential server
    PS_LOG_LEVEL: Logging level (default: INFO)
    PS_AUTO_LOGIN: Log in with stored credentials (default: true)
    PS_SETTINGS_PATH: Settings file (default: ~/.showdown-client.json)
    PS_AUTOJOIN: JSON list of rooms to join
"""

from __future__ import annotations

import asyncio
import logging
import sys

from pydantic import ValidationError

from showdown_client import __version__
from showdown_client.client import ShowdownClient
from showdown_client.config import ClientConfig, get_config
from showdown_client.events import ConnectionClosed, Event
from showdown_client.settings import JsonFileBlobStore

logger = logging.getLogger(__name__)


def _log_event(event: Event) -> None:
    logger.info(f"[{event.kind.value}] {event.model_dump(exclude_none=True)}")


async def run_client(config: ClientConfig) -> int:
    """Run one session until the connection closes.

    Args:
        config: Session configuration

    Returns:
        Exit code (0 once the connection closed, 1 if a transport error closed it)
    """
    client = ShowdownClient(config, blob_store=JsonFileBlobStore(config.settings_path))
    closed = asyncio.Event()
    outcome: list[ConnectionClosed] = []

    def on_closed(event: ConnectionClosed) -> None:
        outcome.append(event)
        closed.set()

    for event_type in Event.__subclasses__():
        client.bus.subscribe(event_type, _log_event)
    client.bus.subscribe(ConnectionClosed, on_closed)

    try:
        await client.start()
        await closed.wait()
    finally:
        await client.stop()

    return 1 if outcome and outcome[0].failed else 0


def main() -> int:
    """Main entry point."""
    try:
        config = get_config()
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    config.setup_logging()

    print(f"Showdown Client v{__version__}")
    print("Configuration:")
    print(f"  Server: {config.server_url}")
    print(f"  Login server: {config.loginserver_url}")
    print(f"  Settings: {config.settings_path}")
    print(f"  Log level: {config.log_level}")

    try:
        return asyncio.run(run_client(config))
    except KeyboardInterrupt:
        print("\nClient stopped.")
        return 0
    except Exception as e:
        logger.error(f"Client error: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
