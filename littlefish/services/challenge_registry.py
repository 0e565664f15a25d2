import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from littlefish.core.cardano_auth import generate_challenge
from littlefish.core.config import settings
from littlefish.core.errors import InvalidChallenge
from littlefish.models.auth import AuthChallenge

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class IssuedChallenge:
    message: str
    issued_at: int
    expires_at: int


class ChallengeRegistry:
    """
    Server-side registry of issued wallet challenges.

    A challenge is bound to the user it was issued to, expires after ``ttl_seconds``
    and can be consumed once. Issuing a new challenge drops the user's outstanding ones.
    Nothing is committed here; the caller owns the transaction.
    """

    def __init__(self, ttl_seconds: int, service_name: str, clock: Clock = utc_now):
        self.ttl_seconds = ttl_seconds
        self.service_name = service_name
        self.clock = clock

    def _now(self) -> int:
        return int(self.clock().timestamp())

    def issue(self, db: Session, user_id: int, address: Optional[str] = None) -> IssuedChallenge:
        moment = self.clock()
        message = generate_challenge(self.service_name, moment)
        issued_at = int(moment.timestamp())
        expires_at = issued_at + self.ttl_seconds

        self.purge_expired(db)
        db.query(AuthChallenge).filter(AuthChallenge.user_id == user_id).delete(synchronize_session=False)
        db.add(AuthChallenge(
            user_id=user_id,
            address=address.strip() if address else None,
            message=message,
            created_at=issued_at,
            expires_at=expires_at,
        ))
        return IssuedChallenge(message=message, issued_at=issued_at, expires_at=expires_at)

    def find(self, db: Session, user_id: int, message: str, address: Optional[str] = None) -> AuthChallenge:
        """Return the live challenge or raise InvalidChallenge. Read-only."""
        record = (
            db.query(AuthChallenge)
            .filter(AuthChallenge.user_id == user_id, AuthChallenge.message == message)
            .first()
        )
        if record is None:
            logger.info("unknown or used challenge from user %s", user_id)
            raise InvalidChallenge("Challenge not found or already used")
        if record.expires_at < self._now():
            logger.info("expired challenge from user %s", user_id)
            raise InvalidChallenge("Challenge expired")
        if record.address and address and record.address != address.strip():
            logger.info("challenge address mismatch for user %s", user_id)
            raise InvalidChallenge("Address does not match challenge owner")
        return record

    def consume(self, db: Session, record: AuthChallenge) -> None:
        db.delete(record)

    def purge_expired(self, db: Session) -> int:
        return (
            db.query(AuthChallenge)
            .filter(AuthChallenge.expires_at < self._now())
            .delete(synchronize_session=False)
        )


def get_challenge_registry() -> ChallengeRegistry:
    return ChallengeRegistry(
        ttl_seconds=settings.CHALLENGE_TTL_SECONDS,
        service_name=settings.SERVICE_NAME,
    )
