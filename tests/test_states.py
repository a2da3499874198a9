"""Tests for the status transition tables."""

import pytest

from nftmarket.errors import BusinessRuleError, IllegalTransition
from nftmarket.models.states import (
    BidStatus, ListingStatus, TradeStatus, RequestStatus,
    WebNotificationStatus, EmailNotificationStatus, TRANSITIONS, advance, can_transition,
)


@pytest.mark.parametrize("entity,current,target", [
    ("Listing", ListingStatus.SCHEDULED, ListingStatus.ACTIVE),
    ("Listing", ListingStatus.ACTIVE, ListingStatus.SOLD),
    ("Listing", ListingStatus.ACTIVE, ListingStatus.CANCELLED),
    ("Listing", ListingStatus.SCHEDULED, ListingStatus.CANCELLED),
    ("Bid", BidStatus.ACTIVE, BidStatus.ACCEPTED),
    ("Bid", BidStatus.ACTIVE, BidStatus.REJECTED),
    ("Trade", TradeStatus.PENDING, TradeStatus.COMPLETED),
    ("Trade", TradeStatus.PENDING, TradeStatus.CANCELLED),
    ("FriendRequest", RequestStatus.PENDING, RequestStatus.ACCEPTED),
    ("WebNotification", WebNotificationStatus.UNREAD, WebNotificationStatus.READ),
    ("EmailNotification", EmailNotificationStatus.PENDING, EmailNotificationStatus.FAILED),
])
def test_allowed_transitions(entity, current, target):
    """Test every documented transition is accepted."""
    assert can_transition(entity, current, target)
    assert advance(entity, current, target) is target


@pytest.mark.parametrize("entity,current,target", [
    ("Listing", ListingStatus.SOLD, ListingStatus.ACTIVE),
    ("Listing", ListingStatus.SCHEDULED, ListingStatus.SOLD),
    ("Listing", ListingStatus.CANCELLED, ListingStatus.ACTIVE),
    ("Bid", BidStatus.REJECTED, BidStatus.ACCEPTED),
    ("Bid", BidStatus.ACCEPTED, BidStatus.REJECTED),
    ("Trade", TradeStatus.CANCELLED, TradeStatus.COMPLETED),
    ("EmailNotification", EmailNotificationStatus.SENT, EmailNotificationStatus.FAILED),
])
def test_illegal_transitions_raise(entity, current, target):
    """Test terminal and skipped states are rejected as business-rule errors."""
    assert not can_transition(entity, current, target)
    with pytest.raises(IllegalTransition) as exc:
        advance(entity, current, target)
    assert isinstance(exc.value, BusinessRuleError)
    assert exc.value.status_code == 400
    assert current.value in exc.value.message


def test_every_status_has_a_row():
    """Test each enum member appears in its table so lookups never miss."""
    for entity, enum_cls in [("Listing", ListingStatus), ("Bid", BidStatus), ("Trade", TradeStatus)]:
        assert set(TRANSITIONS[entity]) == set(enum_cls)
