"""
Account-related SQLAlchemy models.

- User: a wallet-keyed account with balance and notification preferences
- FriendRequest / Friendship: the social graph that gates trades
- RefreshToken / AuthNonce: sign-in state
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Numeric, Enum, ForeignKey, UniqueConstraint
)

from nftmarket.db import Base, utcnow
from nftmarket.models.states import RequestStatus


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    wallet_address = Column(String(42), unique=True, index=True, nullable=False)
    email = Column(String(255), nullable=False)
    nickname = Column(String(20), nullable=False)
    avatar = Column(String(1024), nullable=True)
    balance = Column(Numeric(18, 4), nullable=False, default=0)
    hashed_password = Column(String(255), nullable=True)

    # notification preferences
    item_sold_notification = Column(Boolean, default=True, nullable=False)
    offer_activity_notification = Column(Boolean, default=True, nullable=False)
    best_offer_activity_notification = Column(Boolean, default=True, nullable=False)
    successful_transfer_notification = Column(Boolean, default=True, nullable=False)
    transfer_notification = Column(Boolean, default=True, nullable=False)
    outbid_notification = Column(Boolean, default=True, nullable=False)
    successful_purchase_notification = Column(Boolean, default=True, nullable=False)
    successful_mint_notification = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class FriendRequest(Base):
    __tablename__ = "friend_requests"

    id = Column(Integer, primary_key=True, index=True)
    sender_wallet = Column(String(42), ForeignKey("users.wallet_address"), nullable=False, index=True)
    receiver_wallet = Column(String(42), ForeignKey("users.wallet_address"), nullable=False, index=True)
    status = Column(Enum(RequestStatus, native_enum=False, length=16), nullable=False, default=RequestStatus.PENDING)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Friendship(Base):
    __tablename__ = "friendships"
    __table_args__ = (UniqueConstraint("user1_wallet", "user2_wallet", name="uq_friendship_pair"),)

    id = Column(Integer, primary_key=True, index=True)
    user1_wallet = Column(String(42), ForeignKey("users.wallet_address"), nullable=False, index=True)
    user2_wallet = Column(String(42), ForeignKey("users.wallet_address"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def other(self, wallet: str) -> str:
        return self.user2_wallet if self.user1_wallet == wallet else self.user1_wallet


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, index=True)
    wallet_address = Column(String(42), ForeignKey("users.wallet_address"), unique=True, nullable=False)
    token = Column(String(1024), nullable=False)
    expires_at = Column(DateTime, nullable=False)


class AuthNonce(Base):
    __tablename__ = "auth_nonces"

    id = Column(Integer, primary_key=True, index=True)
    wallet_address = Column(String(42), ForeignKey("users.wallet_address"), unique=True, nullable=False)
    nonce = Column(String(64), nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


__all__ = ["User", "FriendRequest", "Friendship", "RefreshToken", "AuthNonce"]
