from typing import List

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from littlefish.core.errors import NotFound
from littlefish.schemas.indexer import BalanceResponse, HandleLookupResponse, HandleResponse
from littlefish.services.indexer import IndexerResolver, get_resolver, normalize_handle_name

router = APIRouter()
group_tags: List[str] = ["Indexer"]


@router.get(
    "/blockfrost/address/{address}",
    tags=group_tags,
    response_model=BalanceResponse,
    status_code=status.HTTP_200_OK,
)
async def get_address_balance(
    address: str,
    resolver: IndexerResolver = Depends(get_resolver),
) -> BalanceResponse:
    """
    Lovelace and native asset balance of an address, proxied to Blockfrost.
    - status: ok | unavailable | demo, ``unavailable`` means the balance is unknown
    """
    return await resolver.resolve_balance(address)


@router.get(
    "/handle/{address}",
    tags=group_tags,
    response_model=HandleResponse,
    status_code=status.HTTP_200_OK,
)
async def get_address_handle(
    address: str,
    resolver: IndexerResolver = Depends(get_resolver),
) -> HandleResponse:
    """ADA Handles held by an address, ``handle`` and ``handles`` are null when it holds none."""
    return await resolver.resolve_handle(address)


@router.get(
    "/handle-lookup/{handle_name}",
    tags=group_tags,
    response_model=HandleLookupResponse,
    status_code=status.HTTP_200_OK,
    responses={404: {"model": HandleLookupResponse}},
)
async def lookup_handle(
    handle_name: str,
    resolver: IndexerResolver = Depends(get_resolver),
):
    """Address currently holding ``$handle_name``. 404 with ``found: false`` when unregistered."""
    try:
        return await resolver.lookup_handle(handle_name)
    except NotFound as e:
        body = HandleLookupResponse(found=False, handle=normalize_handle_name(handle_name))
        content = body.model_dump(by_alias=True)
        content.update(e.to_dict())
        return JSONResponse(status_code=e.status_code, content=content)
