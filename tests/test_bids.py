"""Tests for the bid lifecycle."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from nftmarket import crud, models
from nftmarket.db import utcnow
from nftmarket.errors import BusinessRuleError, Forbidden, InsufficientBalance, NotFound
from nftmarket.services.market_service import MarketService

from conftest import SELLER, BUYER, CREATOR, OTHER


@pytest.fixture
def auction(make_user, make_collection, make_nft, make_listing):
    """An ACTIVE 40-priced listing and two funded bidders."""
    seller = make_user(SELLER, 0)
    a = make_user(BUYER, 200)
    b = make_user(OTHER, 200)
    make_user(CREATOR, 0)
    nft = make_nft(make_collection(CREATOR, royalties=5), SELLER, price=40)
    listing = make_listing(nft, 40)
    return {"seller": seller, "a": a, "b": b, "nft": nft, "listing": listing}


def test_higher_bid_outbids_previous(db, auction):
    """Test a higher bid rejects the previous one and raises the listing price."""
    listing = auction["listing"]
    first = MarketService(db, auction["a"]).place_bid(listing.id, 50)
    second = MarketService(db, auction["b"]).place_bid(listing.id, 60)

    old = db.get(models.Bid, first["id"])
    assert old.status == models.BidStatus.REJECTED
    assert second["status"] == "ACTIVE"
    assert listing.price == Decimal("60")

    notices = db.execute(select(models.Notification)).scalars().all()
    assert any(n.user_wallet == BUYER and n.type == models.NotificationType.OUTBID for n in notices)
    assert any(n.user_wallet == SELLER and n.type == models.NotificationType.BESTOFFER for n in notices)


def test_tie_is_too_low(db, auction):
    """Test an equal bid does not beat the current highest."""
    listing = auction["listing"]
    MarketService(db, auction["a"]).place_bid(listing.id, 50)
    with pytest.raises(BusinessRuleError, match="Bid is too low"):
        MarketService(db, auction["b"]).place_bid(listing.id, 50)


def test_bid_below_listing_price_keeps_price(db, auction):
    """Test a first bid under the asking price leaves the listing price alone."""
    listing = auction["listing"]
    MarketService(db, auction["a"]).place_bid(listing.id, 30)
    assert listing.price == Decimal("40")


def test_seller_cannot_bid(db, auction):
    """Test the seller may not bid on their own listing."""
    seller = auction["seller"]
    seller.balance = Decimal("500")
    db.commit()
    with pytest.raises(BusinessRuleError):
        MarketService(db, seller).place_bid(auction["listing"].id, 100)


def test_bid_requires_balance(db, auction):
    """Test a bid larger than the bidder's balance is refused."""
    with pytest.raises(InsufficientBalance):
        MarketService(db, auction["a"]).place_bid(auction["listing"].id, 1000)


def test_accept_settles_sale(db, auction):
    """Test accepting a bid sells the NFT to the bidder with royalties."""
    listing = auction["listing"]
    bid = MarketService(db, auction["a"]).place_bid(listing.id, 100)

    result = MarketService(db, auction["seller"]).respond_to_bid(bid["id"], accepted=True)

    assert result["status"] == "ACCEPTED"
    assert result["transaction"]["royaltyAmount"] == 5.0
    assert auction["nft"].owner_wallet == BUYER
    assert listing.status == models.ListingStatus.SOLD
    assert auction["a"].balance == Decimal("100")
    assert auction["seller"].balance == Decimal("95")


def test_accept_rejects_other_active_bids(db, auction):
    """Test every other ACTIVE bid is rejected when one is accepted."""
    listing = auction["listing"]
    stray = models.Bid(listing_id=listing.id, bidder_wallet=OTHER, price=Decimal("45"))
    db.add(stray)
    db.commit()
    bid = MarketService(db, auction["a"]).place_bid(listing.id, 50)
    db.refresh(stray)
    assert stray.status == models.BidStatus.REJECTED

    late = models.Bid(listing_id=listing.id, bidder_wallet=OTHER, price=Decimal("10"))
    db.add(late)
    db.commit()
    MarketService(db, auction["seller"]).respond_to_bid(bid["id"], accepted=True)
    db.refresh(late)
    assert late.status == models.BidStatus.REJECTED


def test_bidder_cannot_accept_own_bid(db, auction):
    """Test only the seller may accept."""
    bid = MarketService(db, auction["a"]).place_bid(auction["listing"].id, 50)
    with pytest.raises(Forbidden):
        MarketService(db, auction["a"]).respond_to_bid(bid["id"], accepted=True)


def test_bidder_may_withdraw(db, auction):
    """Test the bidder can reject their own bid."""
    bid = MarketService(db, auction["a"]).place_bid(auction["listing"].id, 50)
    result = MarketService(db, auction["a"]).respond_to_bid(bid["id"], accepted=False)
    assert result["status"] == "REJECTED"
    assert auction["listing"].status == models.ListingStatus.ACTIVE


def test_stranger_cannot_respond(db, auction, make_user):
    """Test a third party cannot touch a bid."""
    bid = MarketService(db, auction["a"]).place_bid(auction["listing"].id, 50)
    stranger = make_user("0x" + "e" * 40, 0)
    with pytest.raises(Forbidden):
        MarketService(db, stranger).respond_to_bid(bid["id"], accepted=False)


def test_rejected_bid_cannot_be_accepted(db, auction):
    """Test a rejected bid is final."""
    bid = MarketService(db, auction["a"]).place_bid(auction["listing"].id, 50)
    MarketService(db, auction["seller"]).respond_to_bid(bid["id"], accepted=False)
    with pytest.raises(BusinessRuleError):
        MarketService(db, auction["seller"]).respond_to_bid(bid["id"], accepted=True)


def test_acceptance_rechecks_bidder_balance(db, auction):
    """Test a bidder who spent their balance cannot complete the sale."""
    listing = auction["listing"]
    bid = MarketService(db, auction["a"]).place_bid(listing.id, 150)
    auction["a"].balance = Decimal("10")
    db.commit()

    with pytest.raises(InsufficientBalance):
        MarketService(db, auction["seller"]).respond_to_bid(bid["id"], accepted=True)
    db.expire_all()
    assert listing.status == models.ListingStatus.ACTIVE
    assert db.get(models.Bid, bid["id"]).status == models.BidStatus.ACTIVE
    assert auction["nft"].owner_wallet == SELLER


def test_expiring_filter(db, auction):
    """Test EXPIRING lists ACTIVE bids within three days of their 30-day expiry."""
    listing = auction["listing"]
    now = utcnow()
    old = models.Bid(listing_id=listing.id, bidder_wallet=BUYER, price=Decimal("50"),
                     created_at=now - timedelta(days=28))
    fresh = models.Bid(listing_id=listing.id, bidder_wallet=OTHER, price=Decimal("45"),
                       created_at=now - timedelta(days=10))
    closed = models.Bid(listing_id=listing.id, bidder_wallet=OTHER, price=Decimal("42"),
                        status=models.BidStatus.REJECTED, created_at=now - timedelta(days=28))
    db.add_all([old, fresh, closed])
    db.commit()

    svc = MarketService(db)
    expiring = svc.bids_by_owner(SELLER, status="EXPIRING")
    assert [b["id"] for b in expiring["bids"]] == [old.id]
    assert svc.bids_by_owner(SELLER, status="ACTIVE")["total"] == 2
    assert svc.bids_by_owner(SELLER, status="REJECTED")["total"] == 1


def test_bid_locks_listing_row(db, auction, monkeypatch):
    """Test bidding reads the listing FOR UPDATE before comparing against the highest bid."""
    locked = []
    real_lock = crud.lock

    def spy(session, model, row_id, message):
        locked.append((model, row_id))
        return real_lock(session, model, row_id, message)

    monkeypatch.setattr(crud, "lock", spy)
    MarketService(db, auction["a"]).place_bid(auction["listing"].id, 50)
    assert locked == [(models.NFTListing, auction["listing"].id)]


def test_lock_missing_row(db):
    """Test a locked read of a missing row is NotFound."""
    with pytest.raises(NotFound, match="No such listing"):
        crud.lock(db, models.NFTListing, 999, "No such listing")
