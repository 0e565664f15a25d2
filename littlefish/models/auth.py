from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from littlefish.db.base import Base


class AuthChallenge(Base):
    """Issued wallet authentication challenges, single-use with a short TTL."""

    __tablename__ = "auth_challenges"
    __table_args__ = (UniqueConstraint("user_id", "message", name="uq_auth_challenge_user_message"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    address = Column(String(255), nullable=True)
    message = Column(String(255), nullable=False)
    created_at = Column(BigInteger, nullable=False)
    expires_at = Column(BigInteger, nullable=False)


class WalletSession(Base):
    """Active wallet binding of a user, one row per user (last write wins)."""

    __tablename__ = "wallet_sessions"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    wallet_address = Column(String(255), nullable=False)
    network = Column(String(16), nullable=False)  # mainnet | testnet
    connected_at = Column(DateTime(timezone=True), nullable=False)
