# nftmarket/services/user_service.py
import logging
import re
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session

from nftmarket import config, crud
from nftmarket.db import utcnow
from nftmarket.errors import BusinessRuleError, Forbidden, ValidationFailed
from nftmarket.models import (
    User, NFT, Collection, NFTListing, Bid, Trade, Transaction, Notification,
    FriendRequest, Friendship, RefreshToken, AuthNonce,
)
from nftmarket.models.wallet_utils import to_money
from nftmarket.security import hash_password
from nftmarket.services import storage_service
from nftmarket.services.search import fuzzy_filter

log = logging.getLogger("nftmarket.users")

WALLET_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

# API field name -> User column
PREFERENCE_FIELDS = {
    "itemSoldNotification": "item_sold_notification",
    "offerActivityNotification": "offer_activity_notification",
    "bestOfferActivityNotification": "best_offer_activity_notification",
    "successfulTransferNotification": "successful_transfer_notification",
    "transferNotification": "transfer_notification",
    "outbidNotification": "outbid_notification",
    "successfulPurchaseNotification": "successful_purchase_notification",
    "successfulMintNotification": "successful_mint_notification",
}


def validate_wallet(wallet: str) -> str:
    if not wallet or not WALLET_RE.match(wallet):
        raise ValidationFailed("Invalid Ethereum address format")
    return wallet


def user_to_dict(u: User, private: bool = False) -> Dict[str, Any]:
    out = {
        "id": u.id,
        "walletAddress": u.wallet_address,
        "nickname": u.nickname,
        "avatar": u.avatar or config.DEFAULT_AVATAR_URL,
        "createdAt": u.created_at,
    }
    if private:
        out["email"] = u.email
        out["balance"] = float(to_money(u.balance))
        for api_name, column in PREFERENCE_FIELDS.items():
            out[api_name] = bool(getattr(u, column))
    return out


class UserService:
    def __init__(self, db: Session, user: Optional[User] = None):
        self.db = db
        self.user = user

    def _require_self(self, wallet: str) -> User:
        if self.user is None or self.user.wallet_address != wallet:
            raise Forbidden("You can only modify your own account")
        return self.user

    # -------------------------
    # CRUD
    # -------------------------
    def create_user(self, wallet: str, email: str, nickname: str, password: Optional[str] = None,
                    avatar: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        validate_wallet(wallet)
        if crud.get_user(self.db, wallet) is not None:
            raise BusinessRuleError("User already exists")

        avatar_url = config.DEFAULT_AVATAR_URL
        if avatar:
            avatar_url = storage_service.upload_image(avatar["filename"], avatar["content"], avatar.get("content_type"))

        u = User(
            wallet_address=wallet,
            email=email.strip().lower(),
            nickname=nickname.strip(),
            avatar=avatar_url,
            balance=0,
            hashed_password=hash_password(password) if password else None,
        )
        try:
            self.db.add(u)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        log.info("Created user %s", wallet)
        return user_to_dict(u, private=True)

    def get_user(self, wallet: str) -> Dict[str, Any]:
        u = crud.require_user(self.db, validate_wallet(wallet))
        own = self.user is not None and self.user.wallet_address == wallet
        return user_to_dict(u, private=own)

    def list_users(self, query: Optional[str] = None, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        users = self.db.execute(select(User).order_by(User.created_at.asc())).scalars().all()
        users = fuzzy_filter(query, users, ["nickname", "wallet_address"])
        return crud.paginate([user_to_dict(u) for u in users], page, limit, "users")

    def update_user(self, wallet: str, nickname: Optional[str] = None, email: Optional[str] = None,
                    avatar: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        u = self._require_self(wallet)
        old_avatar = u.avatar
        if nickname is not None:
            u.nickname = nickname.strip()
        if email is not None:
            u.email = email.strip().lower()
        if avatar:
            u.avatar = storage_service.upload_image(avatar["filename"], avatar["content"], avatar.get("content_type"))
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        if avatar and old_avatar and old_avatar != config.DEFAULT_AVATAR_URL:
            try:
                storage_service.delete_image(old_avatar)
            except Exception:
                log.exception("Could not delete previous avatar for %s", wallet)
        return user_to_dict(u, private=True)

    def update_preferences(self, prefs: Dict[str, bool]) -> Dict[str, Any]:
        u = self.user
        for api_name, value in prefs.items():
            column = PREFERENCE_FIELDS.get(api_name)
            if column is None:
                raise ValidationFailed(f"Unknown notification preference: {api_name}")
            if value is not None:
                setattr(u, column, bool(value))
        self.db.commit()
        return user_to_dict(u, private=True)

    def _has_market_history(self, wallet: str) -> bool:
        checks = [
            select(func.count()).select_from(NFT).where(
                or_(NFT.owner_wallet == wallet, NFT.creator_wallet == wallet)),
            select(func.count()).select_from(Collection).where(Collection.creator_wallet == wallet),
            select(func.count()).select_from(NFTListing).where(NFTListing.seller_wallet == wallet),
            select(func.count()).select_from(Bid).where(Bid.bidder_wallet == wallet),
            select(func.count()).select_from(Trade).where(
                or_(Trade.offerer_wallet == wallet, Trade.taker_wallet == wallet)),
            select(func.count()).select_from(Transaction).where(
                or_(Transaction.buyer_wallet == wallet, Transaction.seller_wallet == wallet)),
        ]
        return any(self.db.execute(q).scalar_one() for q in checks)

    def delete_user(self, wallet: str) -> Dict[str, Any]:
        u = self._require_self(wallet)
        if self._has_market_history(wallet):
            raise BusinessRuleError("User has marketplace history and cannot be deleted")
        try:
            for model, clause in (
                (FriendRequest, or_(FriendRequest.sender_wallet == wallet, FriendRequest.receiver_wallet == wallet)),
                (Friendship, or_(Friendship.user1_wallet == wallet, Friendship.user2_wallet == wallet)),
                (Notification, Notification.user_wallet == wallet),
                (RefreshToken, RefreshToken.wallet_address == wallet),
                (AuthNonce, AuthNonce.wallet_address == wallet),
            ):
                self.db.query(model).filter(clause).delete(synchronize_session=False)
            self.db.delete(u)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        log.info("Deleted user %s", wallet)
        return {"message": "User was deleted"}

    # -------------------------
    # Portfolio
    # -------------------------
    def calculate_profit(self, wallet: str, hours: int = 24) -> Dict[str, Any]:
        """
        Percent change of a wallet's holdings over the last ``hours``:
        (current holdings + sold since start - holdings at start) / holdings at start.
        """
        validate_wallet(wallet)
        if hours <= 0:
            raise ValidationFailed("Hours must be positive")
        start = utcnow() - timedelta(hours=hours)

        initial = self.db.execute(
            select(func.coalesce(func.sum(NFT.price), 0))
            .where(NFT.owner_wallet == wallet, NFT.updated_at <= start)
        ).scalar_one()
        current = self.db.execute(
            select(func.coalesce(func.sum(NFT.price), 0)).where(NFT.owner_wallet == wallet)
        ).scalar_one()
        sold = self.db.execute(
            select(func.coalesce(func.sum(Transaction.price), 0))
            .where(Transaction.seller_wallet == wallet, Transaction.created_at >= start)
        ).scalar_one()

        initial, current, sold = float(initial), float(current), float(sold)
        profit = (current + sold - initial) / (initial or 1) * 100
        return {"walletAddress": wallet, "hours": hours, "profit": round(profit, 4)}
