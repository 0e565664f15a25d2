import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

import littlefish.schemas.auth as schemas
from littlefish.core.dependencies import (
    SESSION_WALLET_CONNECTED_KEY,
    SESSION_WALLET_KEY,
    get_current_user,
)
from littlefish.db.session import get_db
from littlefish.models.auth import WalletSession
from littlefish.models.users import User
from littlefish.services.challenge_registry import ChallengeRegistry, get_challenge_registry
from littlefish.services.wallet_link import link_wallet, unlink_wallet_session

logger = logging.getLogger(__name__)

router = APIRouter()
group_tags: List[str] = ["Wallet Auth"]


@router.post(
    "/wallet-auth/challenge",
    tags=group_tags,
    response_model=schemas.ChallengeResponse,
    status_code=status.HTTP_201_CREATED,
)
def request_challenge(
    body: Optional[schemas.ChallengeRequest] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    registry: ChallengeRegistry = Depends(get_challenge_registry),
) -> schemas.ChallengeResponse:
    """Issue a single-use challenge for the logged-in user to sign with their wallet."""
    issued = registry.issue(db, user.id, body.address if body else None)
    db.commit()
    return schemas.ChallengeResponse(
        message=issued.message,
        issued_at=issued.issued_at,
        expires_at=issued.expires_at,
    )


@router.post(
    "/wallet-auth",
    tags=group_tags,
    response_model=schemas.WalletAuthResponse,
)
def wallet_auth(
    body: schemas.WalletAuthRequest,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    registry: ChallengeRegistry = Depends(get_challenge_registry),
) -> schemas.WalletAuthResponse:
    """
    Link a wallet to the logged-in account.

    Body:
    - address: bech32 address that signed the challenge
    - message: challenge issued by /wallet-auth/challenge
    - signature: CIP-8 COSE_Sign1 hex (CIP-30 signData) or raw ED25519 signature
    - key: COSE_Key hex (CIP-30 signData) or raw public key, optional for COSE signatures

    Errors: 401 not logged in, 400 validation / challenge / signature, 409 wallet owned by another account
    """
    wallet_session = link_wallet(
        db, registry, user, body.address, body.message, body.signature, body.key
    )

    # refresh the session cookie with the new wallet state
    request.session[SESSION_WALLET_KEY] = wallet_session.wallet_address
    request.session[SESSION_WALLET_CONNECTED_KEY] = wallet_session.connected_at.isoformat()

    return schemas.WalletAuthResponse(
        message="Wallet linked successfully",
        user=schemas.UserResponse.from_record(user),
    )


@router.get(
    "/wallet-auth/session",
    tags=group_tags,
    response_model=schemas.WalletSessionResponse,
)
def get_wallet_session(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> schemas.WalletSessionResponse:
    record = db.get(WalletSession, user.id)
    if record is None:
        return schemas.WalletSessionResponse(connected=False)
    return schemas.WalletSessionResponse(
        connected=True,
        wallet_address=record.wallet_address,
        network=record.network,
        connected_at=record.connected_at,
    )


@router.delete(
    "/wallet-auth",
    tags=group_tags,
    response_model=schemas.WalletAuthResponse,
)
def wallet_disconnect(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> schemas.WalletAuthResponse:
    """Destroy the active wallet session. The account keeps its linked address."""
    if unlink_wallet_session(db, user.id):
        logger.info("wallet session closed for user %s", user.id)
    request.session.pop(SESSION_WALLET_KEY, None)
    request.session.pop(SESSION_WALLET_CONNECTED_KEY, None)
    return schemas.WalletAuthResponse(
        message="Wallet disconnected",
        user=schemas.UserResponse.from_record(user),
    )
