import logging

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from littlefish.core.security import hash_password
from littlefish.db.base import Base
from littlefish.models import auth, users  # noqa: F401  register tables on Base.metadata
from littlefish.models.users import User

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "password123"

DEMO_USERS = [
    {
        "username": "jsmith",
        "name": "John Smith",
        "email": "john@example.com",
        "avatar": "https://images.unsplash.com/photo-1500648767791-00dcc994a43e?auto=format&fit=crop&w=774&q=80",
        "wallet_address": "addr1qxy8p07tr8s70za207wuhq8k2expx5h4kpk4vj2wca9rnfvlh8azrty0jgh9cnyupun5xpfy644kyjy6a5kejcet9cqt2y5yx",
    },
    {
        "username": "sarah",
        "name": "Sarah Jenkins",
        "email": "sarah@example.com",
        "avatar": "https://images.unsplash.com/photo-1573496359142-b8d87734a5a2?auto=format&fit=crop&w=776&q=80",
        "wallet_address": "addr1qx0e458sd9xrt5v3wvrtdqve43aawv0rzlmhk9flpplk52rcmjyd2yvdsccj7muvt2xvj6vvgzvp4ksls5pllvuxa4q2y7n08",
    },
]


def create_tables(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


def seed_demo_users(db: Session) -> int:
    """Insert the demo accounts that are missing. Returns how many were created."""
    created = 0
    for data in DEMO_USERS:
        if db.query(User).filter(User.username == data["username"]).first() is not None:
            continue
        db.add(User(password=hash_password(DEMO_PASSWORD), **data))
        created += 1
    db.commit()
    if created:
        logger.info("seeded %d demo users", created)
    return created


def init_db(engine: Engine, seed: bool = False) -> None:
    create_tables(engine)
    if not seed:
        return
    with Session(bind=engine) as db:
        seed_demo_users(db)
