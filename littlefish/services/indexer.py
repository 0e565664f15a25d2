"""
Balance and handle resolution through the Blockfrost indexer.

The indexer is an untrusted, fallible dependency. Every call runs in a worker thread
bounded by INDEXER_TIMEOUT_SECONDS. Failures are logged and turned into a result with
``status="unavailable"`` so callers can tell "unknown" apart from "zero". They are
never raised to the HTTP layer.
"""

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from blockfrost import ApiError, ApiUrls, BlockFrostApi
from requests import RequestException

from littlefish.core.cache import HybridCacheManager, cache_manager
from littlefish.core.config import settings
from littlefish.core.errors import NotFound, ServiceMisconfigured, ValidationError
from littlefish.schemas.indexer import (
    Asset,
    BalanceResponse,
    HandleLookupResponse,
    HandleResponse,
    ResolveStatus,
)

logger = logging.getLogger(__name__)

LOVELACE_UNIT = "lovelace"
POLICY_ID_HEX_LENGTH = 56
# CIP-68 asset name labels
CIP68_REFERENCE_LABEL = "000643b0"  # (100) reference NFT
CIP68_USER_LABEL = "000de140"  # (222) user NFT

BLOCKFROST_ENDPOINTS = {
    "mainnet": ApiUrls.mainnet.value,
    "preprod": ApiUrls.preprod.value,
    "preview": ApiUrls.preview.value,
}


class IndexerUnavailable(Exception):
    """Raised when the indexer cannot answer (timeout, transport or server error)."""


class AssetNotFound(Exception):
    """Raised when the indexer has no record of an asset."""


class Indexer(ABC):
    """Minimal surface of the chain indexer used by the resolvers."""

    status: ResolveStatus = "ok"

    @abstractmethod
    def address_amounts(self, address: str) -> List[Dict[str, Any]]:
        """Return ``[{"unit", "quantity"}]``; an address unknown to the chain holds nothing."""

    @abstractmethod
    def asset(self, unit: str) -> Dict[str, Any]:
        """Return asset details (policy_id, fingerprint, onchain_metadata)."""

    @abstractmethod
    def asset_addresses(self, unit: str) -> List[Dict[str, Any]]:
        """Return ``[{"address", "quantity"}]`` of current holders."""


class BlockfrostIndexer(Indexer):
    def __init__(self, project_id: str, network: str = "mainnet"):
        self.api = BlockFrostApi(
            project_id=project_id,
            base_url=BLOCKFROST_ENDPOINTS.get(network, BLOCKFROST_ENDPOINTS["mainnet"]),
        )

    def _request(self, fn: Callable[..., Any], *args) -> Any:
        try:
            return fn(*args, return_type="json")
        except ApiError as e:
            if e.status_code == 404:
                raise AssetNotFound(str(args[0]) if args else "")
            raise IndexerUnavailable(f"blockfrost error {e.status_code}") from e
        except RequestException as e:
            raise IndexerUnavailable(f"blockfrost request failed: {e}") from e

    def address_amounts(self, address: str) -> List[Dict[str, Any]]:
        try:
            data = self._request(self.api.address, address)
        except AssetNotFound:
            return []
        if not isinstance(data, dict):
            raise IndexerUnavailable(f"unexpected address body: {type(data).__name__}")
        return list(data.get("amount") or [])

    def asset(self, unit: str) -> Dict[str, Any]:
        return self._request(self.api.asset, unit)

    def asset_addresses(self, unit: str) -> List[Dict[str, Any]]:
        return list(self._request(self.api.asset_addresses, unit) or [])


class DemoIndexer(Indexer):
    """Deterministic fabricated balances for demos. Results are labeled ``demo``."""

    status: ResolveStatus = "demo"

    def address_amounts(self, address: str) -> List[Dict[str, Any]]:
        digest = hashlib.sha256(address.encode("utf-8")).hexdigest()
        lovelace = (int(digest[:8], 16) % 500 + 10) * 1_000_000
        return [{"unit": LOVELACE_UNIT, "quantity": str(lovelace)}]

    def asset(self, unit: str) -> Dict[str, Any]:
        raise AssetNotFound(unit)

    def asset_addresses(self, unit: str) -> List[Dict[str, Any]]:
        raise AssetNotFound(unit)


class UnconfiguredIndexer(Indexer):
    """Stand-in when no API key is configured outside production."""

    def address_amounts(self, address: str) -> List[Dict[str, Any]]:
        raise IndexerUnavailable("indexer api key not configured")

    def asset(self, unit: str) -> Dict[str, Any]:
        raise IndexerUnavailable("indexer api key not configured")

    def asset_addresses(self, unit: str) -> List[Dict[str, Any]]:
        raise IndexerUnavailable("indexer api key not configured")


def decode_handle_name(unit: str, policy_id: str) -> Optional[str]:
    """Return the handle carried by ``unit`` or None when it is not a handle token."""
    if not unit.startswith(policy_id):
        return None
    name_hex = unit[len(policy_id):]
    if name_hex.startswith(CIP68_REFERENCE_LABEL):
        return None
    if name_hex.startswith(CIP68_USER_LABEL):
        name_hex = name_hex[len(CIP68_USER_LABEL):]
    try:
        name = bytes.fromhex(name_hex).decode("utf-8")
    except ValueError:
        return None
    return name or None


def normalize_handle_name(name: str) -> str:
    return (name or "").strip().lstrip("$").strip().lower()


class IndexerResolver:
    def __init__(
        self,
        indexer: Indexer,
        timeout: float = settings.INDEXER_TIMEOUT_SECONDS,
        handle_policy_id: str = settings.HANDLE_POLICY_ID,
        cache: Optional[HybridCacheManager] = None,
    ):
        self.indexer = indexer
        self.timeout = timeout
        self.handle_policy_id = handle_policy_id
        self.cache = cache

    async def _call(self, fn: Callable[..., Any], *args) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise IndexerUnavailable(f"indexer timed out after {self.timeout}s") from e

    async def resolve_balance(self, address: str) -> BalanceResponse:
        try:
            amounts = await self._call(self.indexer.address_amounts, address)
        except IndexerUnavailable as e:
            logger.warning("balance lookup for %s degraded: %s", address, e)
            return BalanceResponse(status="unavailable", lovelace="0", assets=[], reason=str(e))

        lovelace = 0
        assets: List[Asset] = []
        try:
            for item in amounts:
                unit = str(item.get("unit", ""))
                quantity = str(item.get("quantity", "0"))
                if unit == LOVELACE_UNIT:
                    lovelace += int(quantity)
                elif unit:
                    int(quantity)
                    assets.append(Asset(unit=unit, quantity=quantity, policy_id=unit[:POLICY_ID_HEX_LENGTH]))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("malformed balance for %s from indexer: %s", address, e)
            return BalanceResponse(
                status="unavailable", lovelace="0", assets=[], reason=f"malformed indexer response: {e}"
            )
        return BalanceResponse(status=self.indexer.status, lovelace=str(lovelace), assets=assets)

    async def resolve_handle(self, address: str) -> HandleResponse:
        try:
            amounts = await self._call(self.indexer.address_amounts, address)
        except IndexerUnavailable as e:
            logger.warning("handle lookup for %s degraded: %s", address, e)
            return HandleResponse(status="unavailable", reason=str(e))

        handles: List[str] = []
        first_unit: Optional[str] = None
        for item in amounts:
            if not isinstance(item, dict):
                continue
            unit = str(item.get("unit", ""))
            name = decode_handle_name(unit, self.handle_policy_id)
            if name is None or name in handles:
                continue
            if first_unit is None:
                first_unit = unit
            handles.append(name)

        if not handles:
            return HandleResponse(status=self.indexer.status, handle=None, handles=None)

        response = HandleResponse(
            status=self.indexer.status,
            handle=handles[0],
            handles=handles,
            policy_id=self.handle_policy_id,
        )
        try:
            details = await self._call(self.indexer.asset, first_unit)
            response.fingerprint = details.get("fingerprint")
            response.metadata = details.get("onchain_metadata")
        except (IndexerUnavailable, AssetNotFound) as e:
            # handle names are already known, details are optional
            logger.info("handle details for %s unavailable: %s", first_unit, e)
        return response

    def _handle_units(self, name: str) -> List[str]:
        name_hex = name.encode("utf-8").hex()
        return [
            self.handle_policy_id + name_hex,
            self.handle_policy_id + CIP68_USER_LABEL + name_hex,
        ]

    async def lookup_handle(self, handle_name: str) -> HandleLookupResponse:
        """
        Resolve a handle name to the address currently holding it.

        Raises:
            ValidationError: empty name
            NotFound: the handle is not registered (``found`` is False)
        """
        name = normalize_handle_name(handle_name)
        if not name:
            raise ValidationError("Handle name is required", {"handleName": "must not be empty"})

        cache_key = f"handle-lookup:{self.handle_policy_id}:{name}"
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return HandleLookupResponse.model_validate(cached)

        for unit in self._handle_units(name):
            try:
                holders = await self._call(self.indexer.asset_addresses, unit)
            except AssetNotFound:
                continue
            except IndexerUnavailable as e:
                logger.warning("handle lookup for %s degraded: %s", name, e)
                return HandleLookupResponse(status="unavailable", found=False, handle=name, reason=str(e))
            if not holders:
                continue

            result = HandleLookupResponse(
                status=self.indexer.status,
                found=True,
                handle=name,
                address=holders[0].get("address"),
                policy_id=self.handle_policy_id,
            )
            try:
                details = await self._call(self.indexer.asset, unit)
                result.fingerprint = details.get("fingerprint")
            except (IndexerUnavailable, AssetNotFound) as e:
                logger.info("handle details for %s unavailable: %s", unit, e)
            if self.cache is not None:
                self.cache.set(cache_key, result.model_dump(), 'in-5m')
            return result

        raise NotFound(f"Handle ${name} is not registered")


def get_indexer() -> Indexer:
    """Build the indexer from settings. Fails closed in production without an API key."""
    if settings.INDEXER_DEMO_MODE:
        return DemoIndexer()
    if not settings.BLOCKFROST_API_KEY:
        if settings.is_production:
            raise ServiceMisconfigured("Indexer API key is not configured")
        return UnconfiguredIndexer()
    return BlockfrostIndexer(settings.BLOCKFROST_API_KEY, settings.CARDANO_NETWORK)


def get_resolver() -> IndexerResolver:
    return IndexerResolver(get_indexer(), cache=cache_manager)
