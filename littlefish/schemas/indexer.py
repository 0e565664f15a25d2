from typing import Any, List, Literal, Optional

from pydantic import Field

from littlefish.schemas.my_base_model import CustomBaseModel

# ok: indexer answered, unavailable: indexer failed or timed out, demo: fabricated demo data
ResolveStatus = Literal["ok", "unavailable", "demo"]


class Asset(CustomBaseModel):
    """Token balance line item"""

    unit: str
    quantity: str
    fingerprint: Optional[str] = None
    policy_id: Optional[str] = None


class BalanceResponse(CustomBaseModel):
    """Response model for address balance

    ``lovelace`` is an integer encoded as a string. When ``status`` is
    ``unavailable`` the balance is unknown, not zero.
    """

    status: ResolveStatus = "ok"
    lovelace: str = "0"
    assets: List[Asset] = Field(default_factory=list)
    reason: Optional[str] = None


class HandleResponse(CustomBaseModel):
    """Response model for the handles held by an address"""

    status: ResolveStatus = "ok"
    handle: Optional[str] = None
    handles: Optional[List[str]] = None
    policy_id: Optional[str] = None
    fingerprint: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    reason: Optional[str] = None


class HandleLookupResponse(CustomBaseModel):
    """Response model for handle name -> address lookup"""

    status: ResolveStatus = "ok"
    found: bool = False
    handle: str = ""
    address: Optional[str] = None
    policy_id: Optional[str] = None
    fingerprint: Optional[str] = None
    reason: Optional[str] = None
