"""Tests for the headless runner entry point."""

from __future__ import annotations

import os
import socket
from pathlib import Path
from unittest.mock import patch

from showdown_client.__main__ import main, run_client
from showdown_client.config import ClientConfig, reset_config


def get_free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestMain:
    def test_invalid_config_exits_with_error(self) -> None:
        reset_config()
        with patch.dict(os.environ, {"PS_LOG_LEVEL": "LOUD"}):
            assert main() == 1
        reset_config()

    def test_runner_exit_code_is_returned(self) -> None:
        config = ClientConfig(auto_login=False)
        with patch("showdown_client.__main__.get_config", return_value=config), patch(
            "showdown_client.__main__.run_client", return_value=None
        ), patch("showdown_client.__main__.asyncio.run", return_value=0) as run:
            assert main() == 0
        run.assert_called_once()

    def test_keyboard_interrupt_exits_cleanly(self) -> None:
        config = ClientConfig(auto_login=False)
        with patch("showdown_client.__main__.get_config", return_value=config), patch(
            "showdown_client.__main__.run_client", return_value=None
        ), patch("showdown_client.__main__.asyncio.run", side_effect=KeyboardInterrupt):
            assert main() == 0


class TestRunClient:
    async def test_unreachable_server_exits_with_error(self, tmp_path: Path) -> None:
        config = ClientConfig(
            server_url=f"ws://127.0.0.1:{get_free_port()}/showdown/websocket",
            auto_login=False,
            settings_path=tmp_path / "settings.json",
        )

        assert await run_client(config) == 1
