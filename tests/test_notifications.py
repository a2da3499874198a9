"""Tests for notification preferences and the inbox."""

import pytest

from nftmarket import models
from nftmarket.errors import BusinessRuleError, Forbidden, NotFound
from nftmarket.services.notifications_service import NotificationsService, notify

from conftest import SELLER, BUYER


def test_preference_off_suppresses(db, make_user):
    """Test a disabled preference means no notification row."""
    make_user(SELLER, 0, outbid_notification=False)
    assert notify(db, SELLER, "Outbid", "You were outbid", models.NotificationType.OUTBID) is None
    assert notify(db, SELLER, "Sold", "Item sold", models.NotificationType.ITEM_SOLD) is not None


def test_drop_ignores_preferences(db, make_user):
    """Test drop notifications are always delivered."""
    make_user(SELLER, 0, **{col: False for col in (
        "item_sold_notification", "offer_activity_notification", "best_offer_activity_notification",
        "successful_transfer_notification", "transfer_notification", "outbid_notification",
        "successful_purchase_notification", "successful_mint_notification")})
    assert notify(db, SELLER, "Drop", "Dropped", models.NotificationType.DROP) is not None


def test_unknown_recipient_is_skipped(db):
    """Test notifying a wallet with no account is a no-op."""
    assert notify(db, SELLER, "Hi", "there", models.NotificationType.MINT) is None


def test_inbox_and_mark_read(db, make_user):
    """Test listing and marking a notification read."""
    owner = make_user(SELLER, 0)
    make_user(BUYER, 0)
    n = notify(db, SELLER, "Hi", "there", models.NotificationType.MINT)
    db.commit()

    svc = NotificationsService(db, owner)
    inbox = svc.list_notifications()
    assert inbox["total"] == 1
    assert inbox["notifications"][0]["webStatus"] == "UNREAD"

    assert svc.mark_read(n.id)["webStatus"] == "READ"
    with pytest.raises(BusinessRuleError):
        svc.mark_read(n.id)


def test_mark_read_checks_owner(db, make_user):
    """Test one user cannot mark another user's notification."""
    make_user(SELLER, 0)
    other = make_user(BUYER, 0)
    n = notify(db, SELLER, "Hi", "there", models.NotificationType.MINT)
    db.commit()

    with pytest.raises(Forbidden):
        NotificationsService(db, other).mark_read(n.id)
    with pytest.raises(NotFound):
        NotificationsService(db, other).mark_read(9999)
