"""
Uniform surface over installed Cardano wallet extensions (CIP-30 style).

``WalletAdapter`` plays the role of the browser's ``window.cardano`` map: it lists
what is installed, enables one wallet and forwards address, balance and signing
calls to it. Which extensions exist is decided by configuration, see
``littlefish.client.wallets.build_extensions``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


class WalletError(Exception):
    code = "wallet_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self)


class WalletUnavailable(WalletError):
    """Requested wallet is not installed."""

    code = "wallet_unavailable"


class NotConnected(WalletError):
    """No wallet is enabled."""

    code = "not_connected"


class UserRejected(WalletError):
    """The user declined the wallet prompt."""

    code = "user_rejected"


class SignatureDeclined(UserRejected):
    """The user declined or did not answer the signing prompt."""

    code = "signature_declined"


class BalanceUnavailable(WalletError):
    """The wallet cannot report a balance."""

    code = "balance_unavailable"


@dataclass(frozen=True)
class WalletDescriptor:
    name: str
    icon: str = ""
    version: str = ""


@dataclass
class WalletBalance:
    lovelace: int = 0
    # [{"unit": policy_id + asset_name_hex, "quantity": "1"}]
    assets: List[Dict[str, str]] = field(default_factory=list)


class WalletApi(ABC):
    """API of an enabled wallet."""

    @abstractmethod
    def get_network(self) -> str:
        ...

    @abstractmethod
    def get_change_address(self) -> str:
        ...

    @abstractmethod
    def get_reward_address(self) -> Optional[str]:
        ...

    @abstractmethod
    def get_balance(self) -> WalletBalance:
        ...

    @abstractmethod
    def sign_data(self, address: str, message: str) -> Dict[str, str]:
        """Return a CIP-30 DataSignature ``{"signature": hex, "key": hex}``."""

    @abstractmethod
    def sign_tx(self, tx: Any) -> Any:
        ...


class WalletExtension(ABC):
    """An installed wallet that can be enabled."""

    descriptor: WalletDescriptor

    @abstractmethod
    def enable(self) -> WalletApi:
        """Ask for permission. Raises UserRejected when declined."""


class WalletAdapter:
    def __init__(self, extensions: Optional[Mapping[str, WalletExtension]] = None):
        self._extensions: Dict[str, WalletExtension] = dict(extensions or {})
        self._enabled_name: Optional[str] = None
        self._api: Optional[WalletApi] = None

    @property
    def enabled_name(self) -> Optional[str]:
        return self._enabled_name

    @property
    def is_enabled(self) -> bool:
        return self._api is not None

    def list_available(self) -> List[WalletDescriptor]:
        return [ext.descriptor for ext in self._extensions.values()]

    def enable(self, wallet_name: str) -> WalletDescriptor:
        extension = self._extensions.get(wallet_name)
        if extension is None:
            raise WalletUnavailable(f"Wallet {wallet_name} is not installed")
        api = extension.enable()
        self._api = api
        self._enabled_name = wallet_name
        return extension.descriptor

    def disable(self) -> None:
        self._api = None
        self._enabled_name = None

    def _require_api(self) -> WalletApi:
        if self._api is None:
            raise NotConnected("No wallet connected")
        return self._api

    def get_address(self) -> str:
        return self._require_api().get_change_address()

    def get_reward_address(self) -> Optional[str]:
        return self._require_api().get_reward_address()

    def get_network(self) -> str:
        return self._require_api().get_network()

    def get_balance(self) -> WalletBalance:
        return self._require_api().get_balance()

    def sign_data(self, address: str, message: str) -> Dict[str, str]:
        return self._require_api().sign_data(address, message)

    def sign_transaction(self, tx: Any) -> Any:
        return self._require_api().sign_tx(tx)
