from datetime import timedelta
from unittest.mock import Mock, patch

import pytest
from pycardano import Address, Network, PaymentSigningKey
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from littlefish.core.errors import InvalidChallenge, InvalidSignature, ServerError, WalletAlreadyLinked
from littlefish.models.auth import AuthChallenge
from littlefish.models.users import User
from littlefish.services.challenge_registry import ChallengeRegistry
from littlefish.services.wallet_link import link_wallet

ADDRESS = Address(
    payment_part=PaymentSigningKey.generate().to_verification_key().hash(),
    network=Network.MAINNET,
).encode()


@pytest.fixture
def registry(clock) -> ChallengeRegistry:
    return ChallengeRegistry(ttl_seconds=300, service_name="Littlefish Foundation", clock=clock)


class TestChallengeRegistry:
    def test_issue_persists_challenge(self, registry, user, db: Session):
        issued = registry.issue(db, user.id, f" {ADDRESS} ")
        db.commit()

        record = db.query(AuthChallenge).one()
        assert record.message == issued.message
        assert record.address == ADDRESS
        assert record.expires_at - record.created_at == 300

    def test_find_and_consume(self, registry, user, db: Session):
        issued = registry.issue(db, user.id)
        db.commit()

        record = registry.find(db, user.id, issued.message)
        registry.consume(db, record)
        db.commit()

        with pytest.raises(InvalidChallenge):
            registry.find(db, user.id, issued.message)

    def test_challenge_belongs_to_user(self, registry, user, db: Session):
        issued = registry.issue(db, user.id)
        db.commit()

        with pytest.raises(InvalidChallenge):
            registry.find(db, user.id + 1, issued.message)

    def test_expired_challenges_are_purged(self, registry, user, db: Session, clock):
        registry.issue(db, user.id)
        db.commit()
        clock.now = clock.now + timedelta(seconds=301)

        assert registry.purge_expired(db) == 1


class TestLinkWallet:
    """link_wallet with a mocked session, nothing must be written on failure"""

    @pytest.fixture
    def mock_db(self):
        return Mock(spec=Session)

    @pytest.fixture
    def mock_registry(self):
        return Mock(spec=ChallengeRegistry)

    @patch('littlefish.services.wallet_link.verify_signature', return_value=(False, ""))
    def test_invalid_signature_writes_nothing(self, mock_verify, mock_db, mock_registry):
        user = User(id=1, username="jsmith")

        with pytest.raises(InvalidSignature):
            link_wallet(mock_db, mock_registry, user, ADDRESS, "msg", "sig")

        mock_registry.consume.assert_not_called()
        mock_db.add.assert_not_called()
        mock_db.commit.assert_not_called()
        assert user.wallet_address is None

    def test_invalid_challenge_skips_verification(self, mock_db, mock_registry):
        mock_registry.find.side_effect = InvalidChallenge()

        with patch('littlefish.services.wallet_link.verify_signature') as mock_verify:
            with pytest.raises(InvalidChallenge):
                link_wallet(mock_db, mock_registry, User(id=1), ADDRESS, "msg", "sig")

        mock_verify.assert_not_called()
        mock_db.commit.assert_not_called()

    @patch('littlefish.services.wallet_link.verify_signature', return_value=(True, ADDRESS))
    def test_database_failure_rolls_back(self, mock_verify, mock_db, mock_registry):
        mock_db.query.return_value.filter.return_value.first.return_value = None
        mock_db.get.return_value = None
        mock_db.commit.side_effect = OperationalError("UPDATE users", {}, Exception("disk full"))

        with pytest.raises(ServerError):
            link_wallet(mock_db, mock_registry, User(id=1), ADDRESS, "msg", "sig")

        mock_db.rollback.assert_called_once()

    @patch('littlefish.services.wallet_link.verify_signature', return_value=(True, ADDRESS))
    def test_concurrent_link_is_conflict(self, mock_verify, mock_db, mock_registry):
        # ownership check passes, then the unique constraint catches the other account's link
        mock_db.query.return_value.filter.return_value.first.side_effect = [None, User(id=2, wallet_address=ADDRESS)]
        mock_db.get.return_value = None
        mock_db.commit.side_effect = IntegrityError("UPDATE users", {}, Exception("UNIQUE constraint failed"))

        with pytest.raises(WalletAlreadyLinked):
            link_wallet(mock_db, mock_registry, User(id=1), ADDRESS, "msg", "sig")

        mock_db.rollback.assert_called_once()
        mock_db.refresh.assert_not_called()

    @patch('littlefish.services.wallet_link.verify_signature', return_value=(True, ADDRESS))
    def test_integrity_error_without_owner_is_server_error(self, mock_verify, mock_db, mock_registry):
        mock_db.query.return_value.filter.return_value.first.return_value = None
        mock_db.get.return_value = None
        mock_db.commit.side_effect = IntegrityError("INSERT wallet_sessions", {}, Exception("UNIQUE constraint failed"))

        with pytest.raises(ServerError):
            link_wallet(mock_db, mock_registry, User(id=1), ADDRESS, "msg", "sig")

        mock_db.rollback.assert_called_once()
