"""
Models aggregator.

Single import namespace so the rest of the app can do
``from nftmarket.models import User, NFT, NFTListing, ...`` and so that
``init_db()`` registers every table on ``Base.metadata`` with one import.
"""
from nftmarket.db import Base

from nftmarket.models.user_models import User, FriendRequest, Friendship, RefreshToken, AuthNonce
from nftmarket.models.nft_models import Collection, NFT, NFTTrait
from nftmarket.models.market_models import NFTListing, Bid, Transaction, Trade, TradeItem
from nftmarket.models.notifications_model import Notification
from nftmarket.models.states import (
    ListingStatus,
    BidStatus,
    TradeStatus,
    TradeSide,
    RequestStatus,
    TransactionStatus,
    WebNotificationStatus,
    EmailNotificationStatus,
    NotificationType,
    Blockchain,
)

__all__ = [
    "Base",
    "User",
    "FriendRequest",
    "Friendship",
    "RefreshToken",
    "AuthNonce",
    "Collection",
    "NFT",
    "NFTTrait",
    "NFTListing",
    "Bid",
    "Transaction",
    "Trade",
    "TradeItem",
    "Notification",
    "ListingStatus",
    "BidStatus",
    "TradeStatus",
    "TradeSide",
    "RequestStatus",
    "TransactionStatus",
    "WebNotificationStatus",
    "EmailNotificationStatus",
    "NotificationType",
    "Blockchain",
]
