"""Tests for minting, NFT views and collection stats."""

import pytest

from nftmarket import models
from nftmarket.errors import Forbidden, ValidationFailed
from nftmarket.services import nft_service, storage_service
from nftmarket.services.market_service import MarketService
from nftmarket.services.nft_service import NFTService

from conftest import SELLER, BUYER, CREATOR

IMAGE = {"filename": "ape.png", "content": b"\x89PNG", "content_type": "image/png"}


@pytest.fixture
def pinned(monkeypatch):
    """Replace the pinning gateway with an in-memory recorder."""
    pins = []

    def pin_file(filename, content, content_type=None):
        pins.append(("file", filename))
        return "QmImage"

    def pin_json(metadata):
        pins.append(("json", metadata))
        return "QmMeta"

    monkeypatch.setattr(storage_service, "pin_file", pin_file)
    monkeypatch.setattr(storage_service, "pin_json", pin_json)
    return pins


def test_create_collection_pins_and_notifies(db, make_user, pinned):
    """Test a collection is pinned, stored and announced to its creator."""
    creator = make_user(CREATOR)
    out = NFTService(db, creator).create_collection(
        "Bored Apes", "BAPE", "0x" + "1" * 40, models.Blockchain.POLYGON, 7.5, IMAGE)

    assert out["image"] == storage_service.ipfs_image_url("QmImage")
    assert out["royalties"] == 7.5
    assert out["floor"] == 0.0
    assert [kind for kind, _ in pinned] == ["file", "json"]
    assert db.query(models.Notification).one().type == models.NotificationType.MINT


def test_royalties_are_capped(db, make_user, pinned):
    """Test royalties above the maximum are refused."""
    creator = make_user(CREATOR)
    with pytest.raises(ValidationFailed):
        NFTService(db, creator).create_collection(
            "Greedy", "GRD", "0x" + "1" * 40, models.Blockchain.ETHEREUM, 51, IMAGE)


def test_mint_with_traits(db, make_user, make_collection, pinned):
    """Test minting stores traits and pins them as metadata attributes."""
    creator = make_user(CREATOR)
    collection = make_collection(CREATOR)
    out = NFTService(db, creator).create_nft(
        collection.id, "Ape #9", 12, IMAGE, traits=[{"traitType": "Fur", "value": "Gold"}])

    assert out["ownerWallet"] == CREATOR
    assert out["traits"] == [{"traitType": "Fur", "value": "Gold"}]
    metadata = pinned[-1][1]
    assert metadata["attributes"] == [{"trait_type": "Fur", "value": "Gold"}]


def test_only_creator_mints(db, make_user, make_collection, pinned):
    """Test minting into someone else's collection is forbidden."""
    make_user(CREATOR)
    outsider = make_user(SELLER)
    collection = make_collection(CREATOR)
    with pytest.raises(Forbidden):
        NFTService(db, outsider).create_nft(collection.id, "Fake", 1, IMAGE)


def test_detail_and_activity_after_sale(db, make_user, make_collection, make_nft, make_listing):
    """Test the NFT detail shows the sale in its activity feed and collection volume."""
    make_user(SELLER)
    buyer = make_user(BUYER, 100)
    make_user(CREATOR)
    collection = make_collection(CREATOR)
    nft = make_nft(collection, SELLER, price=40)
    listing = make_listing(nft, 40)
    MarketService(db, buyer).buy_listing(listing.id)

    detail = NFTService(db).get_nft(nft.id)
    events = [e["eventType"] for e in detail["activities"]]
    assert "Sale" in events and "Mint" in events
    sale = next(e for e in detail["activities"] if e["eventType"] == "Sale")
    assert (sale["from"], sale["to"], sale["price"]) == (SELLER, BUYER, 40.0)

    stats = NFTService(db).get_collection(collection.id)
    assert stats["volume"] == 40.0
    assert stats["itemsCount"] == 1
    assert stats["ownersCount"] == 1

    only_sales = NFTService(db).collection_activities(collection.id, ["Sale"])
    assert only_sales["total"] == 1
    with pytest.raises(ValidationFailed):
        NFTService(db).collection_activities(collection.id, ["Burn"])


def test_owner_view_filters_and_sorts(db, make_user, make_collection, make_nft, make_listing):
    """Test the owned-NFT view filters by listing state and sorts by price."""
    make_user(SELLER)
    collection = make_collection(SELLER)
    cheap = make_nft(collection, SELLER, price=5, name="Cheap")
    pricey = make_nft(collection, SELLER, price=50, name="Pricey")
    make_listing(pricey, 50)

    svc = NFTService(db)
    by_price = svc.nfts_by_owner(SELLER, sort_criteria="price:desc")
    assert [n["name"] for n in by_price["nfts"]] == ["Pricey", "Cheap"]
    assert [n["name"] for n in svc.nfts_by_owner(SELLER, status="LISTED")["nfts"]] == ["Pricey"]
    assert [n["name"] for n in svc.nfts_by_owner(SELLER, status="NEW")["nfts"]] == ["Cheap"]
    assert svc.nfts_by_owner(SELLER, max_price=10)["total"] == 1
    assert cheap.id != pricey.id


def test_collection_search_sorts_on_stats(db, make_user, make_collection, make_nft):
    """Test collection search filters by name and sorts by floor."""
    make_user(SELLER)
    apes = make_collection(SELLER, name="Bored Apes", symbol="BAPE")
    cats = make_collection(SELLER, name="Cool Cats", symbol="COOL")
    make_nft(apes, SELLER, price=30)
    make_nft(cats, SELLER, price=3)

    result = NFTService(db).search_collections(None, sort_criteria="floor:asc")
    assert [c["name"] for c in result["collections"]] == ["Cool Cats", "Bored Apes"]
    assert [c["name"] for c in NFTService(db).search_collections("bored")["collections"]] == ["Bored Apes"]


def test_failed_mint_logs_orphaned_pins(db, make_user, make_collection, pinned, monkeypatch, caplog):
    """Test a rolled-back mint logs the IPFS hashes it already pinned."""
    creator = make_user(CREATOR)
    collection = make_collection(CREATOR)

    def broken_notify(*args, **kwargs):
        raise RuntimeError("notification store down")

    monkeypatch.setattr(nft_service, "notify", broken_notify)
    with caplog.at_level("ERROR", logger="nftmarket.nfts"):
        with pytest.raises(RuntimeError):
            NFTService(db, creator).create_nft(collection.id, "Ape #9", 1, IMAGE)

    assert "QmImage" in caplog.text and "QmMeta" in caplog.text
    assert db.query(models.NFT).filter_by(name="Ape #9").count() == 0
