# nftmarket/models/states.py
"""
Status variants and their transition tables.

Each status column is one of these enums. Code never assigns a status
directly; it goes through ``advance(entity_name, current, target)`` (or
``crud.claim_status``, which calls it) so an illegal jump raises
``IllegalTransition``.
"""
import enum
from typing import Dict, FrozenSet

from nftmarket.errors import IllegalTransition


class ListingStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    ACTIVE = "ACTIVE"
    SOLD = "SOLD"
    CANCELLED = "CANCELLED"


class BidStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class TradeStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TradeSide(str, enum.Enum):
    OFFER = "OFFER"
    RECEIVER = "RECEIVER"


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class TransactionStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"


class WebNotificationStatus(str, enum.Enum):
    UNREAD = "UNREAD"
    READ = "READ"


class EmailNotificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class NotificationType(str, enum.Enum):
    MINT = "MINT"
    PURCHASE = "PURCHASE"
    ITEM_SOLD = "ITEM_SOLD"
    OUTBID = "OUTBID"
    BESTOFFER = "BESTOFFER"
    OFFER = "OFFER"
    TRANSFER = "TRANSFER"
    SUCCESSTRANSFER = "SUCCESSTRANSFER"
    DROP = "DROP"


class Blockchain(str, enum.Enum):
    ETHEREUM = "ETHEREUM"
    POLYGON = "POLYGON"
    SOLANA = "SOLANA"


TRANSITIONS: Dict[str, Dict[enum.Enum, FrozenSet[enum.Enum]]] = {
    "Listing": {
        ListingStatus.SCHEDULED: frozenset({ListingStatus.ACTIVE, ListingStatus.CANCELLED}),
        ListingStatus.ACTIVE: frozenset({ListingStatus.SOLD, ListingStatus.CANCELLED}),
        ListingStatus.SOLD: frozenset(),
        ListingStatus.CANCELLED: frozenset(),
    },
    "Bid": {
        BidStatus.ACTIVE: frozenset({BidStatus.ACCEPTED, BidStatus.REJECTED}),
        BidStatus.ACCEPTED: frozenset(),
        BidStatus.REJECTED: frozenset(),
    },
    "Trade": {
        TradeStatus.PENDING: frozenset({TradeStatus.COMPLETED, TradeStatus.CANCELLED}),
        TradeStatus.COMPLETED: frozenset(),
        TradeStatus.CANCELLED: frozenset(),
    },
    "FriendRequest": {
        RequestStatus.PENDING: frozenset({RequestStatus.ACCEPTED, RequestStatus.REJECTED}),
        RequestStatus.ACCEPTED: frozenset(),
        RequestStatus.REJECTED: frozenset(),
    },
    "WebNotification": {
        WebNotificationStatus.UNREAD: frozenset({WebNotificationStatus.READ}),
        WebNotificationStatus.READ: frozenset(),
    },
    "EmailNotification": {
        EmailNotificationStatus.PENDING: frozenset({EmailNotificationStatus.SENT, EmailNotificationStatus.FAILED}),
        EmailNotificationStatus.SENT: frozenset(),
        EmailNotificationStatus.FAILED: frozenset(),
    },
}


def can_transition(entity: str, current: enum.Enum, target: enum.Enum) -> bool:
    return target in TRANSITIONS[entity].get(current, frozenset())


def advance(entity: str, current: enum.Enum, target: enum.Enum) -> enum.Enum:
    if not can_transition(entity, current, target):
        raise IllegalTransition(entity, current, target)
    return target
