"""Tests for accounts, friends and portfolio profit."""

from datetime import timedelta
from decimal import Decimal

import pytest

from nftmarket import models
from nftmarket.db import utcnow
from nftmarket.errors import BusinessRuleError, Forbidden, NotFound, ValidationFailed
from nftmarket.services.friends_service import FriendsService
from nftmarket.services.user_service import UserService
from nftmarket.services.wallet_service import WalletService

from conftest import SELLER, BUYER, OTHER


def test_create_user_uses_default_avatar(db):
    """Test a new account gets the default avatar and a zero balance."""
    user = UserService(db).create_user(SELLER, "Alice@Example.com", "alice")
    assert user["avatar"]
    assert user["email"] == "alice@example.com"
    assert user["balance"] == 0.0
    assert user["itemSoldNotification"] is True


def test_duplicate_and_bad_wallets(db, make_user):
    """Test duplicates and malformed addresses are rejected."""
    make_user(SELLER)
    with pytest.raises(BusinessRuleError, match="already exists"):
        UserService(db).create_user(SELLER, "a@example.com", "alice")
    with pytest.raises(ValidationFailed):
        UserService(db).create_user("0x123", "a@example.com", "alice")


def test_private_fields_only_for_self(db, make_user):
    """Test email and balance are only shown to the account owner."""
    me = make_user(SELLER, 12)
    assert "balance" not in UserService(db).get_user(SELLER)
    assert UserService(db, me).get_user(SELLER)["balance"] == 12.0


def test_update_is_self_only(db, make_user):
    """Test users can only edit their own profile."""
    me = make_user(SELLER)
    make_user(BUYER)
    assert UserService(db, me).update_user(SELLER, nickname="renamed")["nickname"] == "renamed"
    with pytest.raises(Forbidden):
        UserService(db, me).update_user(BUYER, nickname="hijack")


def test_update_preferences(db, make_user):
    """Test notification preferences are toggled by API name."""
    me = make_user(SELLER)
    out = UserService(db, me).update_preferences({"outbidNotification": False})
    assert out["outbidNotification"] is False
    assert me.outbid_notification is False
    with pytest.raises(ValidationFailed):
        UserService(db, me).update_preferences({"spamNotification": True})


def test_delete_blocked_by_history(db, make_user, make_collection):
    """Test an account with marketplace history cannot be deleted."""
    me = make_user(SELLER)
    make_collection(SELLER)
    with pytest.raises(BusinessRuleError):
        UserService(db, me).delete_user(SELLER)


def test_delete_removes_account(db, make_user):
    """Test a fresh account can delete itself with its social rows."""
    me = make_user(SELLER)
    make_user(BUYER)
    db.add(models.Friendship(user1_wallet=SELLER, user2_wallet=BUYER))
    db.commit()
    UserService(db, me).delete_user(SELLER)
    assert db.query(models.User).filter_by(wallet_address=SELLER).first() is None
    assert db.query(models.Friendship).count() == 0


def test_admin_credit(db, make_user):
    """Test an admin top-up increases the balance."""
    make_user(SELLER, 1)
    assert WalletService(db).credit_balance(SELLER, "2.5")["balance"] == 3.5
    with pytest.raises(ValidationFailed):
        WalletService(db).credit_balance(SELLER, 0)


def test_profit_counts_sales(db, make_user, make_collection, make_nft, make_listing):
    """Test profit compares current plus sold value with the starting holdings."""
    make_user(SELLER)
    make_user(BUYER, 100)
    collection = make_collection(SELLER, royalties=0)
    old = utcnow() - timedelta(hours=48)
    kept = make_nft(collection, SELLER, price=100, name="Kept")
    sold = make_nft(collection, SELLER, price=50, name="Sold")
    kept.updated_at = old
    sold.updated_at = old
    db.commit()

    listing = make_listing(sold, 50)
    db.add(models.Transaction(listing_id=listing.id, buyer_wallet=BUYER, seller_wallet=SELLER,
                              price=Decimal("80"), network="Ethereum"))
    sold.owner_wallet = BUYER
    db.commit()

    # initial: 100 (kept) only, sold has moved and was touched after the window
    # current: 100, sold: 80 -> (100 + 80 - 100) / 100 * 100
    result = UserService(db).calculate_profit(SELLER, hours=24)
    assert result == {"walletAddress": SELLER, "hours": 24, "profit": 80.0}


def test_friend_request_flow(db, make_user):
    """Test sending, accepting and removing a friend."""
    alice = make_user(SELLER, nickname="alice")
    bob = make_user(BUYER, nickname="bob")

    req = FriendsService(db, alice).send_request(BUYER)
    with pytest.raises(BusinessRuleError):
        FriendsService(db, bob).send_request(SELLER)
    assert FriendsService(db, bob).list_requests("received")["total"] == 1

    with pytest.raises(Forbidden):
        FriendsService(db, alice).respond(req["id"], accepted=True)
    FriendsService(db, bob).respond(req["id"], accepted=True)

    assert [f["nickname"] for f in FriendsService(db, alice).list_friends()["friends"]] == ["bob"]
    with pytest.raises(BusinessRuleError):
        FriendsService(db, alice).send_request(BUYER)

    FriendsService(db, bob).remove_friend(SELLER)
    assert FriendsService(db, alice).list_friends()["total"] == 0


def test_cannot_befriend_self_or_ghost(db, make_user):
    """Test self requests and unknown receivers fail."""
    alice = make_user(SELLER)
    with pytest.raises(BusinessRuleError):
        FriendsService(db, alice).send_request(SELLER)
    with pytest.raises(NotFound):
        FriendsService(db, alice).send_request(OTHER)
