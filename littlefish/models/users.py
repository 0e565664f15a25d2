from sqlalchemy import Column, DateTime, Integer, Text
from sqlalchemy.sql import func

from littlefish.db.base import Base


class User(Base):
    """Model for users table
    Example:
    {
        "id": 1,
        "username": "jsmith",
        "password": "$2b$12$...",
        "name": "John Smith",
        "email": "john@example.com",
        "avatar": null,
        "wallet_address": "addr1qxy8p07tr8s70za207wuhq8k2expx5h4kpk4vj2wca9rnfvlh8azrty0jgh9cnyupun5xpfy644kyjy6a5kejcet9cqt2y5yx",
        "created_at": "2024-01-01T12:00:00"
    }
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(Text, nullable=False, unique=True)
    password = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False, unique=True)
    avatar = Column(Text, nullable=True)
    wallet_address = Column(Text, nullable=True, unique=True)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
