"""
Binding of a verified wallet address to an authenticated user.

link_wallet() is the only place a user's wallet_address changes. All checks run
before the first write so a failure never leaves a partial binding behind.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from littlefish.core.cardano_auth import address_network, verify_signature
from littlefish.core.errors import InvalidSignature, ServerError, WalletAlreadyLinked
from littlefish.models.auth import WalletSession
from littlefish.models.users import User
from littlefish.services.challenge_registry import ChallengeRegistry

logger = logging.getLogger(__name__)


def _other_owner(db: Session, user: User, address: str) -> Optional[User]:
    return db.query(User).filter(User.wallet_address == address, User.id != user.id).first()


def link_wallet(
    db: Session,
    registry: ChallengeRegistry,
    user: User,
    address: str,
    message: str,
    signature: str,
    key: Optional[str] = None,
) -> WalletSession:
    """
    Verify a signed challenge and bind the address to ``user``.

    Raises:
        InvalidChallenge: message was not issued to this user, expired or already used
        InvalidSignature: signature does not prove control of ``address`` over ``message``
        WalletAlreadyLinked: another account already owns the address
        ServerError: the database write failed (rolled back)
    """
    challenge = registry.find(db, user.id, message, address)

    is_valid, normalized_address = verify_signature(address, message, signature, key)
    if not is_valid:
        logger.info("rejected wallet signature for user %s", user.id)
        raise InvalidSignature()

    if _other_owner(db, user, normalized_address) is not None:
        raise WalletAlreadyLinked()

    now = datetime.now(timezone.utc)
    try:
        registry.consume(db, challenge)
        user.wallet_address = normalized_address
        wallet_session = db.get(WalletSession, user.id)
        if wallet_session is None:
            wallet_session = WalletSession(user_id=user.id)
            db.add(wallet_session)
        wallet_session.wallet_address = normalized_address
        wallet_session.network = address_network(normalized_address)
        wallet_session.connected_at = now
        db.commit()
    except IntegrityError:
        db.rollback()
        # another account linked the same address since the ownership check
        if _other_owner(db, user, normalized_address) is not None:
            logger.info("wallet %s was linked concurrently by another user", normalized_address)
            raise WalletAlreadyLinked()
        logger.exception("failed to link wallet for user %s", user.id)
        raise ServerError("Failed to link wallet")
    except SQLAlchemyError:
        db.rollback()
        logger.exception("failed to link wallet for user %s", user.id)
        raise ServerError("Failed to link wallet")

    db.refresh(user)
    db.refresh(wallet_session)
    logger.info("linked wallet %s to user %s", normalized_address, user.id)
    return wallet_session


def unlink_wallet_session(db: Session, user_id: int) -> bool:
    """Destroy the active wallet session of a user. The account's wallet_address stays."""
    deleted = db.query(WalletSession).filter(WalletSession.user_id == user_id).delete(synchronize_session=False)
    db.commit()
    return deleted > 0
