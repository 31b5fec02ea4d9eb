"""Showdown Client - protocol engine for a pipe-delimited chat server.

An engine that:
- Owns one WebSocket connection to the chat server
- Decodes room-scoped frames into room, roster and message state
- Logs in from stored or handed-over credentials
- Highlights messages matching the user's watch words
- Publishes typed events for a UI layer to consume
"""

from showdown_client.client import ShowdownClient
from showdown_client.config import ClientConfig
from showdown_client.events import EventBus

__version__ = "0.1.0"

__all__ = ["ClientConfig", "EventBus", "ShowdownClient", "__version__"]
