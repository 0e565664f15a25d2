"""
Client-side wallet session.

``WalletSession`` owns the connection state machine and the cached user and wallet
state of one client. It drives a ``WalletAdapter`` and talks to the API through
``LittlefishApi``:

    api = LittlefishApi(requests.Session(), settings.API_BASE_URL)
    session = WalletSession(WalletAdapter(build_extensions()), api)
    session.login("jsmith", "password123")
    session.connect("TestWallet")
    session.authenticate()
    session.user["walletAddress"]

State machine::

    disconnected -> connecting -> connected -> authenticating -> authenticated
    any -> error, error -> disconnected (reset)
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, MutableMapping, Optional
from urllib.parse import quote

from requests import RequestException

from littlefish.client.wallet_provider import (
    NotConnected,
    SignatureDeclined,
    UserRejected,
    WalletAdapter,
    WalletError,
)
from littlefish.core.config import settings
from littlefish.core.errors import AppError, error_from_body

logger = logging.getLogger(__name__)

WALLET_PREFERENCE_KEY = "littlefish.wallet"


class ApiUnavailable(Exception):
    """The API could not be reached."""

    code = "api_unavailable"


class InvalidStateTransition(WalletError):
    """The session cannot move to the requested state."""

    code = "invalid_state_transition"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    ERROR = "error"


# every state may also move to ERROR
TRANSITIONS = {
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING},
    ConnectionState.CONNECTING: {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED},
    ConnectionState.CONNECTED: {
        ConnectionState.AUTHENTICATING,
        ConnectionState.CONNECTING,
        ConnectionState.DISCONNECTED,
    },
    ConnectionState.AUTHENTICATING: {ConnectionState.AUTHENTICATED},
    ConnectionState.AUTHENTICATED: {
        ConnectionState.AUTHENTICATING,
        ConnectionState.CONNECTING,
        ConnectionState.DISCONNECTED,
    },
    ConnectionState.ERROR: {ConnectionState.DISCONNECTED},
}


class LittlefishApi:
    """
    Thin HTTP client for the Littlefish API.

    ``http`` is anything with a requests-style ``request`` method that keeps cookies,
    a ``requests.Session`` in production or a ``fastapi.testclient.TestClient`` in tests.
    Error responses are raised as the matching ``AppError`` subclass.
    """

    def __init__(self, http: Any, base_url: str = settings.API_BASE_URL, timeout: float = 15.0):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, allow_status: Optional[int] = None, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(method, url, timeout=self.timeout, **kwargs)
        except RequestException as e:
            raise ApiUnavailable(f"{method} {path} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400 and response.status_code != allow_status:
            raise error_from_body(response.status_code, body if isinstance(body, dict) else {})
        return body

    def login(self, username: str, password: str) -> Dict[str, Any]:
        return self._request("POST", "/api/login", json={"username": username, "password": password})

    def logout(self) -> Dict[str, Any]:
        return self._request("POST", "/api/logout")

    def current_user(self) -> Dict[str, Any]:
        return self._request("GET", "/api/user")

    def request_challenge(self, address: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", "/api/wallet-auth/challenge", json={"address": address})

    def link_wallet(self, address: str, message: str, signature: str, key: Optional[str] = None) -> Dict[str, Any]:
        payload = {"address": address, "message": message, "signature": signature}
        if key:
            payload["key"] = key
        return self._request("POST", "/api/wallet-auth", json=payload)

    def wallet_session(self) -> Dict[str, Any]:
        return self._request("GET", "/api/wallet-auth/session")

    def unlink_wallet(self) -> Dict[str, Any]:
        return self._request("DELETE", "/api/wallet-auth")

    def balance(self, address: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/blockfrost/address/{quote(address)}")

    def handle(self, address: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/handle/{quote(address)}")

    def lookup_handle(self, handle_name: str) -> Dict[str, Any]:
        """Unregistered handles come back as ``{"found": False}`` rather than raising."""
        return self._request("GET", f"/api/handle-lookup/{quote(handle_name)}", allow_status=404)


@dataclass
class WalletInfo:
    name: str
    address: str
    network: str
    reward_address: Optional[str] = None
    handle: Optional[str] = None
    handles: Optional[List[str]] = None
    lovelace: str = "0"
    assets: List[Dict[str, Any]] = field(default_factory=list)
    # ok | unavailable | demo, None until the first refresh
    balance_status: Optional[str] = None


class WalletSession:
    def __init__(
        self,
        adapter: WalletAdapter,
        api: LittlefishApi,
        prompt_timeout: float = settings.WALLET_PROMPT_TIMEOUT_SECONDS,
        store: Optional[MutableMapping[str, str]] = None,
    ):
        self.adapter = adapter
        self.api = api
        self.prompt_timeout = prompt_timeout
        self.store = store
        self.state = ConnectionState.DISCONNECTED
        self.error_code: Optional[str] = None
        self.user: Optional[Dict[str, Any]] = None
        self.wallet: Optional[WalletInfo] = None

    # state machine

    def _transition(self, target: ConnectionState) -> None:
        if target != ConnectionState.ERROR and target not in TRANSITIONS[self.state]:
            raise InvalidStateTransition(f"Cannot move from {self.state.value} to {target.value}")
        logger.debug("wallet session %s -> %s", self.state.value, target.value)
        self.state = target

    def _fail(self, error: Exception) -> None:
        self.error_code = getattr(error, "code", "unknown_error")
        self._transition(ConnectionState.ERROR)

    def _prompt(self, fn: Callable[..., Any], *args) -> Any:
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(fn, *args)
            return future.result(timeout=self.prompt_timeout)
        except FutureTimeout:
            raise SignatureDeclined("Wallet prompt timed out")
        finally:
            executor.shutdown(wait=False)

    @property
    def is_authenticated(self) -> bool:
        return self.state == ConnectionState.AUTHENTICATED

    # account

    def login(self, username: str, password: str) -> Dict[str, Any]:
        self.user = self.api.login(username, password)
        return self.user

    def logout(self) -> None:
        """Log out and tear down the wallet connection locally and on the server."""
        self.adapter.disable()
        self.wallet = None
        self.error_code = None
        self.state = ConnectionState.DISCONNECTED
        self.user = None
        self.api.logout()

    # wallet

    def connect(self, wallet_name: str) -> WalletInfo:
        self._transition(ConnectionState.CONNECTING)
        try:
            self.adapter.enable(wallet_name)
            self.wallet = WalletInfo(
                name=wallet_name,
                address=self.adapter.get_address(),
                network=self.adapter.get_network(),
                reward_address=self.adapter.get_reward_address(),
            )
        except WalletError as e:
            self.adapter.disable()
            self._fail(e)
            raise

        if self.store is not None:
            self.store[WALLET_PREFERENCE_KEY] = wallet_name
        self._transition(ConnectionState.CONNECTED)
        logger.info("connected wallet %s", wallet_name)
        self.refresh()
        return self.wallet

    def refresh(self) -> WalletInfo:
        """Reload balance and handle of the connected wallet. Indexer outages are not raised."""
        if self.wallet is None:
            raise NotConnected("No wallet connected")
        wallet = self.wallet
        try:
            balance = self.api.balance(wallet.address)
            wallet.lovelace = balance.get("lovelace", "0")
            wallet.assets = balance.get("assets", [])
            wallet.balance_status = balance.get("status", "ok")
        except (ApiUnavailable, AppError) as e:
            logger.warning("wallet balance refresh failed: %s", e)
            wallet.balance_status = "unavailable"
        # a failed handle lookup keeps the last known handle
        try:
            handle = self.api.handle(wallet.address)
        except (ApiUnavailable, AppError) as e:
            logger.warning("wallet handle refresh failed: %s", e)
        else:
            wallet.handle = handle.get("handle")
            wallet.handles = handle.get("handles")
        return wallet

    def authenticate(self) -> Dict[str, Any]:
        """
        Sign a fresh server challenge with the connected wallet and link it to the account.

        Raises:
            NotConnected: no wallet is enabled
            SignatureDeclined: the user declined the prompt or it timed out
            AppError: the server rejected the challenge, signature or link
        """
        if not self.adapter.is_enabled or self.wallet is None:
            raise NotConnected("Connect a wallet before authenticating")
        self._transition(ConnectionState.AUTHENTICATING)
        address = self.wallet.address
        try:
            challenge = self.api.request_challenge(address)
            try:
                signed = self._prompt(self.adapter.sign_data, address, challenge["message"])
            except SignatureDeclined:
                raise
            except UserRejected as e:
                raise SignatureDeclined(e.message) from e
            result = self.api.link_wallet(address, challenge["message"], signed["signature"], signed.get("key"))
        except (WalletError, AppError, ApiUnavailable) as e:
            self._fail(e)
            raise

        self.user = result["user"]
        self._transition(ConnectionState.AUTHENTICATED)
        return self.user

    def disconnect(self) -> None:
        """Disconnect the wallet. The linked address stays on the account."""
        if self.state == ConnectionState.AUTHENTICATED:
            try:
                self.api.unlink_wallet()
            except (AppError, ApiUnavailable) as e:
                self._fail(e)
                raise
        self._transition(ConnectionState.DISCONNECTED)
        self.adapter.disable()
        self.wallet = None
        if self.store is not None:
            self.store.pop(WALLET_PREFERENCE_KEY, None)

    def reset(self) -> None:
        """Leave the error state so the user can retry."""
        self._transition(ConnectionState.DISCONNECTED)
        self.adapter.disable()
        self.wallet = None
        self.error_code = None

    def restore(self) -> Optional[WalletInfo]:
        """Reconnect the wallet remembered in the preference store, if it is still installed."""
        if self.store is None:
            return None
        wallet_name = self.store.get(WALLET_PREFERENCE_KEY)
        if not wallet_name:
            return None
        available = {d.name for d in self.adapter.list_available()}
        if wallet_name not in available:
            self.store.pop(WALLET_PREFERENCE_KEY, None)
            return None
        return self.connect(wallet_name)
