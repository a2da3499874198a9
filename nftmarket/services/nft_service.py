# nftmarket/services/nft_service.py
"""
Collections, NFTs and the read-side views over them.

Mint flows pin the image (and a metadata JSON document) to IPFS before
the rows are written; stats and activity feeds are computed on read from
listings, bids, transactions and completed trades.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from nftmarket import config, crud
from nftmarket.db import utcnow
from nftmarket.errors import Forbidden, ValidationFailed
from nftmarket.models import (
    User, Collection, NFT, NFTTrait, NFTListing, Bid, Transaction, Trade, TradeItem,
    Blockchain, BidStatus, ListingStatus, TradeStatus, TradeSide, NotificationType,
)
from nftmarket.models.wallet_utils import to_money
from nftmarket.services import storage_service
from nftmarket.services.notifications_service import notify
from nftmarket.services.search import fuzzy_filter

log = logging.getLogger("nftmarket.nfts")

EVENT_TYPES = ("Mint", "Sale", "Offer", "Transfer")
COLLECTION_SORT_FIELDS = ("floor", "floorChange", "volume", "volumeChange", "itemsCount", "ownersCount")
OWNED_NFT_SORT_FIELDS = ("price", "bestOffer")


def _f(value) -> float:
    return float(to_money(value))


def nft_to_dict(n: NFT) -> Dict[str, Any]:
    return {
        "id": n.id,
        "tokenId": n.token_id,
        "name": n.name,
        "description": n.description,
        "quantity": n.quantity,
        "price": _f(n.price),
        "image": n.image,
        "metadataURI": n.metadata_uri,
        "collectionId": n.collection_id,
        "collectionName": n.collection.name if n.collection else None,
        "ownerWallet": n.owner_wallet,
        "creatorWallet": n.creator_wallet,
        "traits": [{"traitType": t.trait_type, "value": t.value} for t in n.traits],
        "createdAt": n.created_at,
    }


def collection_to_dict(c: Collection) -> Dict[str, Any]:
    return {
        "id": c.id,
        "name": c.name,
        "symbol": c.symbol,
        "contractAddress": c.contract_address,
        "blockchain": c.blockchain.value,
        "image": c.image,
        "metadata": c.metadata_uri,
        "royalties": float(c.royalties or 0),
        "creatorWallet": c.creator_wallet,
        "createdAt": c.created_at,
    }


class NFTService:
    def __init__(self, db: Session, user: Optional[User] = None):
        self.db = db
        self.user = user

    # ======================================================
    # MINTING
    # ======================================================
    def create_collection(self, name: str, symbol: str, contract_address: str, blockchain: Blockchain,
                          royalties, image: Dict[str, Any]) -> Dict[str, Any]:
        royalties = Decimal(str(royalties))
        if royalties < 0 or royalties > config.MAX_ROYALTIES:
            raise ValidationFailed(f"Royalties must be between 0 and {config.MAX_ROYALTIES}")
        if not image or not image.get("content"):
            raise ValidationFailed("Image is required")

        image_hash = storage_service.pin_file(image["filename"], image["content"], image.get("content_type"))
        metadata_hash = storage_service.pin_json({
            "name": name,
            "symbol": symbol,
            "contractAddress": contract_address,
            "image": f"ipfs://{image_hash}",
        })

        c = Collection(
            name=name,
            symbol=symbol,
            contract_address=contract_address,
            blockchain=blockchain,
            image=storage_service.ipfs_image_url(image_hash),
            metadata_uri=storage_service.gateway_url(metadata_hash),
            royalties=royalties,
            creator_wallet=self.user.wallet_address,
        )
        try:
            self.db.add(c)
            self.db.flush()
            notify(self.db, c.creator_wallet, "New collection",
                   f"You created a new collection: {c.name}", NotificationType.MINT)
            self.db.commit()
        except Exception:
            self.db.rollback()
            log.error("Collection %s not saved; orphaned pins image=%s metadata=%s", name, image_hash, metadata_hash)
            raise
        log.info("Collection %s created by %s", c.id, c.creator_wallet)
        return dict(collection_to_dict(c), **self._empty_stats())

    def create_nft(self, collection_id: int, name: str, price, image: Dict[str, Any],
                   description: Optional[str] = None, quantity: int = 1,
                   traits: Optional[List[Dict[str, str]]] = None) -> Dict[str, Any]:
        collection = crud.require(self.db, Collection, collection_id, "No such collection")
        if collection.creator_wallet != self.user.wallet_address:
            raise Forbidden("Only the collection creator can mint into it")
        if to_money(price) < 0:
            raise ValidationFailed("Price must not be negative")
        if not image or not image.get("content"):
            raise ValidationFailed("Image is required")
        traits = traits or []

        image_hash = storage_service.pin_file(image["filename"], image["content"], image.get("content_type"))
        metadata_hash = storage_service.pin_json({
            "name": name,
            "description": description or "",
            "image": f"ipfs://{image_hash}",
            "attributes": [{"trait_type": t["traitType"], "value": t["value"]} for t in traits],
        })

        n = NFT(
            name=name,
            description=description,
            quantity=quantity,
            price=to_money(price),
            image=storage_service.ipfs_image_url(image_hash),
            metadata_uri=storage_service.gateway_url(metadata_hash),
            collection_id=collection.id,
            owner_wallet=self.user.wallet_address,
            creator_wallet=self.user.wallet_address,
        )
        n.traits = [NFTTrait(trait_type=t["traitType"], value=str(t["value"])) for t in traits]
        try:
            self.db.add(n)
            self.db.flush()
            notify(self.db, n.creator_wallet, "NFT MINTED", f"You minted a new NFT: {n.name}", NotificationType.MINT)
            self.db.commit()
        except Exception:
            self.db.rollback()
            log.error("NFT %s not saved; orphaned pins image=%s metadata=%s", name, image_hash, metadata_hash)
            raise
        log.info("NFT %s minted in collection %s", n.id, collection.id)
        return nft_to_dict(n)

    def set_token_id(self, nft_id: int, token_id: str) -> Dict[str, Any]:
        n = crud.require(self.db, NFT, nft_id, "No such NFT")
        if self.user.wallet_address not in (n.owner_wallet, n.creator_wallet):
            raise Forbidden("You are not the owner of this NFT")
        n.token_id = token_id
        self.db.commit()
        return nft_to_dict(n)

    # ======================================================
    # NFT READS
    # ======================================================
    def best_offer(self, nft_id: int) -> Optional[Bid]:
        return self.db.execute(
            select(Bid).join(NFTListing, Bid.listing_id == NFTListing.id)
            .where(NFTListing.nft_id == nft_id, Bid.status == BidStatus.ACTIVE)
            .order_by(Bid.price.desc())
        ).scalars().first()

    def bids_for_nft(self, n: NFT) -> List[Dict[str, Any]]:
        floor = _f(n.price)
        bids = self.db.execute(
            select(Bid).join(NFTListing, Bid.listing_id == NFTListing.id)
            .where(NFTListing.nft_id == n.id).order_by(Bid.created_at.desc())
        ).scalars().all()
        return [{
            "id": b.id,
            "listingId": b.listing_id,
            "bidderWallet": b.bidder_wallet,
            "price": _f(b.price),
            "floorDifference": ((_f(b.price) - floor) / floor * 100) if floor else 0.0,
            "status": b.status.value,
            "createdAt": b.created_at,
        } for b in bids]

    def get_nft(self, nft_id: int) -> Dict[str, Any]:
        n = crud.require(self.db, NFT, nft_id, "No such NFT")
        best = self.best_offer(n.id)
        listings = self.db.execute(
            select(NFTListing).where(NFTListing.nft_id == n.id).order_by(NFTListing.created_at.desc())
        ).scalars().all()
        out = nft_to_dict(n)
        out.update({
            "bestOffer": _f(best.price) if best else 0.0,
            "listings": [{
                "id": l.id,
                "price": _f(l.price),
                "status": l.status.value,
                "sellerWallet": l.seller_wallet,
                "dropAt": l.drop_at,
            } for l in listings],
            "bids": self.bids_for_nft(n),
            "activities": self.activities(nft_ids=[n.id]),
        })
        return out

    def list_nfts(self, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        rows = self.db.execute(select(NFT).order_by(NFT.created_at.desc(), NFT.id.desc())).scalars().all()
        return crud.paginate([nft_to_dict(n) for n in rows], page, limit, "nfts")

    def search_nfts(self, query: Optional[str], collection_id: Optional[int] = None,
                    page: int = 1, limit: int = 10) -> Dict[str, Any]:
        stmt = select(NFT).order_by(NFT.created_at.desc(), NFT.id.desc())
        if collection_id is not None:
            stmt = stmt.where(NFT.collection_id == collection_id)
        rows = fuzzy_filter(query, self.db.execute(stmt).scalars().all(), ["name"])
        return crud.paginate([nft_to_dict(n) for n in rows], page, limit, "nfts")

    def nfts_by_owner(self, wallet: str, query: Optional[str] = None, min_price=None, max_price=None,
                      blockchain: Optional[Blockchain] = None, status: Optional[str] = None,
                      sort_criteria: Optional[str] = None, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        criteria = crud.parse_sort_criteria(sort_criteria, OWNED_NFT_SORT_FIELDS)
        stmt = select(NFT).where(NFT.owner_wallet == wallet)
        if min_price is not None:
            stmt = stmt.where(NFT.price >= min_price)
        if max_price is not None:
            stmt = stmt.where(NFT.price <= max_price)
        if blockchain is not None:
            stmt = stmt.join(Collection, NFT.collection_id == Collection.id).where(Collection.blockchain == blockchain)
        listed = select(NFTListing.nft_id)
        if status == "LISTED":
            stmt = stmt.where(NFT.id.in_(listed))
        elif status == "NEW":
            stmt = stmt.where(NFT.id.not_in(listed), NFT.id.not_in(select(TradeItem.nft_id)))
        elif status is not None:
            raise ValidationFailed("Status must be NEW or LISTED")

        rows = fuzzy_filter(query, self.db.execute(stmt.order_by(NFT.id)).scalars().all(), ["name"])
        enriched = []
        for n in rows:
            best = self.best_offer(n.id)
            enriched.append(dict(nft_to_dict(n), bestOffer=_f(best.price) if best else 0.0))
        return crud.paginate(crud.multi_sort(enriched, criteria), page, limit, "nfts")

    # ======================================================
    # ACTIVITY FEED
    # ======================================================
    def activities(self, nft_ids: List[int], event_types: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        """Mint, Sale, Offer and Transfer events for the given NFTs, newest first."""
        if event_types:
            unknown = set(event_types) - set(EVENT_TYPES)
            if unknown:
                raise ValidationFailed(f"Unknown event types: {', '.join(sorted(unknown))}")
        wanted = set(event_types or EVENT_TYPES)
        if not nft_ids:
            return []
        events: List[Dict[str, Any]] = []

        def add(event_type, nft, src, dst, date, price=None):
            events.append({
                "eventType": event_type,
                "nftId": nft.id,
                "nftName": nft.name,
                "from": src,
                "to": dst,
                "price": price,
                "date": date,
            })

        nfts = self.db.execute(select(NFT).where(NFT.id.in_(nft_ids))).scalars().all()
        if "Mint" in wanted:
            for n in nfts:
                add("Mint", n, n.creator_wallet, n.collection.creator_wallet, n.created_at)

        if "Sale" in wanted:
            sales = self.db.execute(
                select(Transaction, NFT)
                .join(NFTListing, Transaction.listing_id == NFTListing.id)
                .join(NFT, NFTListing.nft_id == NFT.id)
                .where(NFT.id.in_(nft_ids))
            ).all()
            for txn, n in sales:
                add("Sale", n, txn.seller_wallet, txn.buyer_wallet, txn.created_at, _f(txn.price))

        if "Offer" in wanted:
            offers = self.db.execute(
                select(Bid, NFTListing, NFT)
                .join(NFTListing, Bid.listing_id == NFTListing.id)
                .join(NFT, NFTListing.nft_id == NFT.id)
                .where(NFT.id.in_(nft_ids))
            ).all()
            for bid, listing, n in offers:
                add("Offer", n, bid.bidder_wallet, listing.seller_wallet, bid.created_at, _f(bid.price))

        if "Transfer" in wanted:
            transfers = self.db.execute(
                select(TradeItem, Trade, NFT)
                .join(Trade, TradeItem.trade_id == Trade.id)
                .join(NFT, TradeItem.nft_id == NFT.id)
                .where(NFT.id.in_(nft_ids), Trade.status == TradeStatus.COMPLETED)
            ).all()
            for item, trade, n in transfers:
                if item.side == TradeSide.OFFER:
                    add("Transfer", n, trade.offerer_wallet, trade.taker_wallet, trade.exchange_time)
                else:
                    add("Transfer", n, trade.taker_wallet, trade.offerer_wallet, trade.exchange_time)

        events.sort(key=lambda e: e["date"] or datetime.min, reverse=True)
        return events

    # ======================================================
    # COLLECTIONS
    # ======================================================
    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {"floor": 0.0, "floorChange": 0.0, "volume": 0.0, "volumeChange": 0.0,
                "itemsCount": 0, "ownersCount": 0, "nextDrop": None}

    def _volume_between(self, collection_id: int, start=None, end=None) -> float:
        stmt = (
            select(func.coalesce(func.sum(Transaction.price), 0))
            .join(NFTListing, Transaction.listing_id == NFTListing.id)
            .join(NFT, NFTListing.nft_id == NFT.id)
            .where(NFT.collection_id == collection_id)
        )
        if start is not None:
            stmt = stmt.where(Transaction.created_at >= start)
        if end is not None:
            stmt = stmt.where(Transaction.created_at < end)
        return float(self.db.execute(stmt).scalar_one())

    def collection_stats(self, collection_id: int) -> Dict[str, Any]:
        db = self.db
        now = utcnow()
        day_ago = now - timedelta(hours=24)

        floor = float(db.execute(
            select(func.coalesce(func.min(NFT.price), 0)).where(NFT.collection_id == collection_id)
        ).scalar_one())
        past_floor = float(db.execute(
            select(func.coalesce(func.min(NFT.price), 0))
            .where(NFT.collection_id == collection_id, NFT.updated_at <= day_ago)
        ).scalar_one())
        last_day = self._volume_between(collection_id, start=day_ago)
        previous_day = self._volume_between(collection_id, start=day_ago - timedelta(hours=24), end=day_ago)
        items = db.execute(
            select(func.count()).select_from(NFT).where(NFT.collection_id == collection_id)
        ).scalar_one()
        owners = db.execute(
            select(func.count(func.distinct(NFT.owner_wallet))).where(NFT.collection_id == collection_id)
        ).scalar_one()
        next_drop = db.execute(
            select(func.min(NFTListing.drop_at))
            .join(NFT, NFTListing.nft_id == NFT.id)
            .where(NFT.collection_id == collection_id, NFTListing.status == ListingStatus.SCHEDULED)
        ).scalar_one()

        return {
            "floor": floor,
            "floorChange": (floor - past_floor) / (past_floor or 1) * 100,
            "volume": self._volume_between(collection_id),
            "volumeChange": (last_day - previous_day) / (previous_day or 1) * 100,
            "itemsCount": int(items),
            "ownersCount": int(owners),
            "nextDrop": next_drop,
        }

    def get_collection(self, collection_id: int) -> Dict[str, Any]:
        c = crud.require(self.db, Collection, collection_id, "No such collection")
        out = collection_to_dict(c)
        out.update(self.collection_stats(c.id))
        return out

    def collection_activities(self, collection_id: int, event_types: Optional[List[str]] = None,
                              page: int = 1, limit: int = 10) -> Dict[str, Any]:
        crud.require(self.db, Collection, collection_id, "No such collection")
        nft_ids = list(self.db.execute(select(NFT.id).where(NFT.collection_id == collection_id)).scalars())
        return crud.paginate(self.activities(nft_ids, event_types), page, limit, "activities")

    def list_collections(self, creator_wallet: Optional[str] = None,
                         page: int = 1, limit: int = 10) -> Dict[str, Any]:
        stmt = select(Collection).order_by(Collection.created_at.desc(), Collection.id.desc())
        if creator_wallet:
            stmt = stmt.where(Collection.creator_wallet == creator_wallet)
        rows = self.db.execute(stmt).scalars().all()
        return crud.paginate([collection_to_dict(c) for c in rows], page, limit, "collections")

    def search_collections(self, query: Optional[str], sort_criteria: Optional[str] = None,
                           page: int = 1, limit: int = 10) -> Dict[str, Any]:
        criteria = crud.parse_sort_criteria(sort_criteria, COLLECTION_SORT_FIELDS)
        rows = fuzzy_filter(query, self.db.execute(select(Collection).order_by(Collection.id)).scalars().all(),
                            ["name", "symbol"])
        enriched = [dict(collection_to_dict(c), **self.collection_stats(c.id)) for c in rows]
        return crud.paginate(crud.multi_sort(enriched, criteria), page, limit, "collections")
