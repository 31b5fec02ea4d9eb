"""Login state machine and credential server client.

Provides:
- parse_loginserver_response: decoding of the sentinel-prefixed responses
- LoginServerClient: aiohttp client for the token exchange endpoints
- LoginStateMachine: resolves a credential against the challenge, trying
  each source in order, and sends the resulting assertion
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import webbrowser
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import urlencode

import aiohttp

from showdown_client.models import to_id
from showdown_client.settings import SettingsStore, usable_credential

logger = logging.getLogger(__name__)

FAILURE_SENTINEL = ";"
DEFAULT_REQUEST_TIMEOUT = 10.0


class AuthState(Enum):
    """States of the login state machine."""

    WAITING_FOR_CHALLENGE = "waiting_for_challenge"
    RESOLVING_CREDENTIAL = "resolving_credential"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"
    ANONYMOUS = "anonymous"


def parse_loginserver_response(text: str) -> str | None:
    """Decode a credential server response.

    The server prefixes JSON payloads with a one-character sentinel. A
    leading ``;`` means failure. Otherwise the sentinel is stripped and the
    rest parsed: ``{"success": false}`` is a failure, a truthy ``success``
    value is the result. A body that is not such a JSON payload is the raw
    result string.

    Returns:
        The assertion or token, or None on failure
    """
    if not text:
        return None
    if text.startswith(FAILURE_SENTINEL):
        logger.error("Credential server refused the request: %s", text[:100])
        return None
    try:
        payload: Any = json.loads(text[1:])
    except json.JSONDecodeError:
        payload = None
    if isinstance(payload, dict):
        success = payload.get("success")
        if success is False:
            logger.error("Credential server reported failure: %s", payload)
            return None
        if success:
            return str(success)
    return text.strip() or None


class LoginServerClient:
    """HTTP client for the credential server."""

    def __init__(
        self,
        base_url: str,
        client_id: str = "",
        session: aiohttp.ClientSession | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Base URL ending with a slash, e.g. https://play.pokemonshowdown.com/api/
            client_id: OAuth client id added to every request
            session: Session to reuse; one is created lazily otherwise
            timeout: Total timeout per request in seconds
        """
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._client_id = client_id
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get(self, endpoint: str, params: dict[str, str]) -> str | None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        url = self._base_url + endpoint
        try:
            async with self._session.get(url, params=params) as response:
                text = await response.text()
                if response.status >= 400:
                    logger.warning(f"Credential server returned HTTP {response.status} for {endpoint}")
                    return None
                return parse_loginserver_response(text)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Credential server request to {endpoint} failed: {e}")
            return None

    async def get_assertion_from_token(self, challenge: str, token: str) -> str | None:
        """Exchange a token for an assertion bound to `challenge`."""
        return await self._get(
            "oauth/api/getassertion",
            {"challenge": challenge, "token": token, "client_id": self._client_id},
        )

    async def refresh_token(self, token: str) -> str | None:
        """Exchange a long-lived token for a fresh one."""
        return await self._get(
            "oauth/api/refreshtoken",
            {"token": token, "client_id": self._client_id},
        )

    def authorize_url(self, challenge: str, redirect_uri: str) -> str:
        """URL of the browser-based authorization flow."""
        query = urlencode(
            {
                "redirect_uri": redirect_uri,
                "client_id": self._client_id,
                "challenge": challenge,
            }
        )
        return f"{self._base_url}oauth/authorize?{query}"

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


@dataclass(frozen=True)
class LoginRedirect:
    """What the interactive login flow hands back."""

    assertion: str | None = None
    token: str | None = None


class LoginStateMachine:
    """Negotiates the login for one connection.

    Credential sources, first success wins:
    1. an assertion handed over by an external login flow (with its token)
    2. the stored token, exchanged for an assertion
    3. the stored token refreshed, then exchanged for an assertion
    4. none: the session stays anonymous until `interactive_login` succeeds

    No step raises; failures are logged and fall through.
    """

    def __init__(
        self,
        *,
        get_challenge: Callable[[], str],
        send: Callable[[str], None],
        settings: SettingsStore,
        login_server: LoginServerClient,
        poll_interval: float = 0.5,
        challenge_timeout: float | None = None,
        assertion: str | None = None,
        token: str | None = None,
    ) -> None:
        """Initialize the state machine.

        Args:
            get_challenge: Returns the current challenge ("" until received)
            send: Sends a global command line to the chat server
            settings: Settings holding the username and the stored token
            login_server: Credential server client
            poll_interval: Seconds between challenge checks
            challenge_timeout: Give up waiting for the challenge after this
                many seconds (None waits forever)
            assertion: Assertion handed over by an external login flow
            token: Token handed over together with that assertion
        """
        self._get_challenge = get_challenge
        self._send = send
        self._settings = settings
        self._login_server = login_server
        self._poll_interval = poll_interval
        self._challenge_timeout = challenge_timeout
        self._handover_assertion = usable_credential(assertion)
        self._handover_token = usable_credential(token)
        self._state = AuthState.WAITING_FOR_CHALLENGE

    @property
    def state(self) -> AuthState:
        return self._state

    def reset(self) -> None:
        """Start over for a new connection."""
        self._state = AuthState.WAITING_FOR_CHALLENGE

    async def wait_for_challenge(self) -> str | None:
        """Poll until the server delivered the challenge.

        Returns:
            The challenge, or None if the timeout expired
        """
        deadline = (
            time.monotonic() + self._challenge_timeout
            if self._challenge_timeout is not None
            else None
        )
        while not self._get_challenge():
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning("No challenge received after %.1fs", self._challenge_timeout)
                return None
            await asyncio.sleep(self._poll_interval)
        return self._get_challenge()

    def send_assertion(self, assertion: str) -> None:
        """Send the rename command carrying an assertion.

        The stored display name is kept when it maps to the asserted user id.
        """
        parts = assertion.split(",")
        username = parts[1] if len(parts) > 1 else ""
        stored = self._settings.username
        name = stored if stored and to_id(stored) == to_id(username) else username
        self._send(f"/trn {name},0,{assertion}")

    def mark_authenticated(self) -> None:
        self._state = AuthState.AUTHENTICATED

    async def try_login(self) -> bool:
        """Resolve a credential non-interactively and send it.

        Returns:
            True if an assertion was sent
        """
        self._state = AuthState.WAITING_FOR_CHALLENGE
        challenge = await self.wait_for_challenge()
        if challenge is None:
            self._state = AuthState.FAILED
            return False

        self._state = AuthState.RESOLVING_CREDENTIAL

        if self._handover_assertion:
            assertion, token = self._handover_assertion, self._handover_token
            self._handover_assertion = self._handover_token = None
            self.send_assertion(assertion)
            if token:
                self._settings.set_token(token)
            return True

        token = self._settings.get_token()
        if not token:
            logger.info("No stored credential, staying anonymous")
            self._state = AuthState.ANONYMOUS
            return False

        assertion = await self._login_server.get_assertion_from_token(challenge, token)
        if assertion:
            self.send_assertion(assertion)
            return True

        logger.info("Stored token was not accepted, refreshing it")
        self._state = AuthState.FAILED
        refreshed = await self._login_server.refresh_token(token)
        if not refreshed:
            logger.error("Couldn't refresh token")
            self._state = AuthState.ANONYMOUS
            return False
        self._settings.set_token(refreshed)

        self._state = AuthState.RESOLVING_CREDENTIAL
        assertion = await self._login_server.get_assertion_from_token(challenge, refreshed)
        if assertion:
            self.send_assertion(assertion)
            return True

        self._state = AuthState.ANONYMOUS
        return False

    async def interactive_login(
        self,
        poll_redirect: Callable[[], Awaitable[LoginRedirect | None]],
        redirect_uri: str,
        open_url: Callable[[str], object] = webbrowser.open,
        poll_interval: float = 0.5,
        timeout: float = 300.0,
    ) -> bool:
        """Run the browser-based authorization flow.

        Opens the authorization URL, then polls `poll_redirect` until it
        returns the assertion/token pair or the timeout expires.

        Returns:
            True if an assertion was sent
        """
        challenge = await self.wait_for_challenge()
        if challenge is None:
            return False
        url = self._login_server.authorize_url(challenge, redirect_uri)
        logger.info("Opening authorization page %s", url)
        open_url(url)

        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            redirect = await poll_redirect()
            if redirect is not None:
                if redirect.token:
                    self._settings.set_token(redirect.token)
                if redirect.assertion:
                    self._state = AuthState.RESOLVING_CREDENTIAL
                    self.send_assertion(redirect.assertion)
                    return True
                logger.warning("Authorization flow returned without an assertion")
                return False
            await asyncio.sleep(poll_interval)

        logger.warning("Interactive login timed out after %.0fs", timeout)
        return False
