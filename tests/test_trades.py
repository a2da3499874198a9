"""Tests for peer-to-peer trades."""

import pytest

from nftmarket import models
from nftmarket.errors import BusinessRuleError, Forbidden, ValidationFailed
from nftmarket.services.market_service import MarketService

from conftest import SELLER, BUYER, CREATOR, OTHER


@pytest.fixture
def friends(db, make_user, make_collection, make_nft):
    """Two friends holding one NFT each."""
    offerer = make_user(SELLER, 0, nickname="alice")
    taker = make_user(BUYER, 0, nickname="bob")
    make_user(CREATOR, 0)
    collection = make_collection(CREATOR)
    mine = make_nft(collection, SELLER, name="Mine")
    theirs = make_nft(collection, BUYER, name="Theirs")
    db.add(models.Friendship(user1_wallet=SELLER, user2_wallet=BUYER))
    db.commit()
    return {"offerer": offerer, "taker": taker, "mine": mine, "theirs": theirs}


def test_trade_requires_friendship(db, make_user, make_collection, make_nft):
    """Test strangers cannot trade."""
    offerer = make_user(SELLER, 0)
    make_user(OTHER, 0)
    nft = make_nft(make_collection(SELLER), SELLER)
    with pytest.raises(BusinessRuleError, match="friends"):
        MarketService(db, offerer).create_trade(OTHER, [nft.id], [])


def test_trade_with_self_is_rejected(db, friends):
    """Test a wallet cannot trade with itself."""
    with pytest.raises(BusinessRuleError):
        MarketService(db, friends["offerer"]).create_trade(SELLER, [friends["mine"].id], [])


def test_trade_needs_an_nft(db, friends):
    """Test an empty trade is invalid."""
    with pytest.raises(ValidationFailed):
        MarketService(db, friends["offerer"]).create_trade(BUYER, [], [])


def test_offered_nft_must_be_owned(db, friends):
    """Test the offerer cannot offer the taker's NFT."""
    with pytest.raises(BusinessRuleError, match="not the owner"):
        MarketService(db, friends["offerer"]).create_trade(BUYER, [friends["theirs"].id], [])


def test_accept_swaps_ownership(db, friends):
    """Test acceptance swaps both NFTs and records the exchange time."""
    trade = MarketService(db, friends["offerer"]).create_trade(
        BUYER, [friends["mine"].id], [friends["theirs"].id])
    assert trade["status"] == "PENDING"
    assert any(n.user_wallet == BUYER and n.type == models.NotificationType.TRANSFER
               for n in db.query(models.Notification))

    result = MarketService(db, friends["taker"]).respond_to_trade(trade["id"], accepted=True)

    assert result["status"] == "COMPLETED"
    assert result["exchangeTime"] is not None
    assert friends["mine"].owner_wallet == BUYER
    assert friends["theirs"].owner_wallet == SELLER
    completed = [n for n in db.query(models.Notification)
                 if n.type == models.NotificationType.SUCCESSTRANSFER]
    assert {n.user_wallet for n in completed} == {SELLER, BUYER}


def test_only_taker_accepts(db, friends):
    """Test the offerer cannot accept their own offer."""
    trade = MarketService(db, friends["offerer"]).create_trade(BUYER, [friends["mine"].id], [])
    with pytest.raises(Forbidden):
        MarketService(db, friends["offerer"]).respond_to_trade(trade["id"], accepted=True)


def test_taker_rejects(db, friends):
    """Test rejecting cancels the trade and moves nothing."""
    trade = MarketService(db, friends["offerer"]).create_trade(BUYER, [friends["mine"].id], [])
    result = MarketService(db, friends["taker"]).respond_to_trade(trade["id"], accepted=False)
    assert result["status"] == "CANCELLED"
    assert friends["mine"].owner_wallet == SELLER


def test_offerer_cancels(db, friends):
    """Test the offerer can withdraw a pending trade."""
    trade = MarketService(db, friends["offerer"]).create_trade(BUYER, [friends["mine"].id], [])
    result = MarketService(db, friends["offerer"]).respond_to_trade(trade["id"], accepted=False)
    assert result["status"] == "CANCELLED"


def test_acceptance_revalidates_ownership(db, friends, make_user):
    """Test a trade fails if an NFT changed hands after the offer."""
    trade = MarketService(db, friends["offerer"]).create_trade(BUYER, [friends["mine"].id], [])
    make_user(OTHER, 0)
    friends["mine"].owner_wallet = OTHER
    db.commit()

    with pytest.raises(BusinessRuleError, match="no longer owns"):
        MarketService(db, friends["taker"]).respond_to_trade(trade["id"], accepted=True)
    db.expire_all()
    assert db.get(models.Trade, trade["id"]).status == models.TradeStatus.PENDING


def test_pending_and_history_views(db, friends):
    """Test sent/received views list pending trades and history lists closed ones."""
    svc = MarketService(db, friends["offerer"])
    trade = svc.create_trade(BUYER, [friends["mine"].id], [friends["theirs"].id])

    sent = svc.pending_trades(SELLER, "sent")
    assert sent["total"] == 1
    assert [n["name"] for n in sent["trades"][0]["nfts"]] == ["Mine"]
    received = svc.pending_trades(BUYER, "received")
    assert [n["name"] for n in received["trades"][0]["nfts"]] == ["Theirs"]

    MarketService(db, friends["taker"]).respond_to_trade(trade["id"], accepted=False)
    assert svc.pending_trades(SELLER, "sent")["total"] == 0
    assert svc.trade_history(SELLER)["trades"][0]["status"] == "CANCELLED"


def test_trade_cancels_open_listing(db, friends, make_user, make_listing):
    """Test a traded NFT's listing closes so the new owner can list it."""
    bidder = make_user(OTHER, 100)
    listing = make_listing(friends["mine"], 40)
    bid = MarketService(db, bidder).place_bid(listing.id, 45)
    trade = MarketService(db, friends["offerer"]).create_trade(BUYER, [friends["mine"].id], [])

    MarketService(db, friends["taker"]).respond_to_trade(trade["id"], accepted=True)

    assert friends["mine"].owner_wallet == BUYER
    assert listing.status == models.ListingStatus.CANCELLED
    assert db.get(models.Bid, bid["id"]).status == models.BidStatus.REJECTED
    assert any(n.user_wallet == OTHER and n.type == models.NotificationType.OFFER
               for n in db.query(models.Notification))

    relisted = MarketService(db, friends["taker"]).create_listing(friends["mine"].id, 50, "0x" + "1" * 40)
    assert relisted["status"] == "ACTIVE"
    assert relisted["sellerWallet"] == BUYER


def test_previous_owners_listing_does_not_block_new_owner(db, friends, make_listing):
    """Test only listings by the current owner count as already listed."""
    make_listing(friends["mine"], 40)
    friends["mine"].owner_wallet = BUYER
    db.commit()

    out = MarketService(db, friends["taker"]).create_listing(friends["mine"].id, 70, "0x" + "1" * 40)
    assert out["sellerWallet"] == BUYER
    with pytest.raises(BusinessRuleError, match="already listed"):
        MarketService(db, friends["taker"]).create_listing(friends["mine"].id, 80, "0x" + "1" * 40)
