# nftmarket/services/market_service.py
"""
Listings, bids and trades.

Every flow that moves money or ownership runs in one session transaction:
the rows are mutated, ``commit()`` is called once, and any exception rolls
the whole unit back. Notifications are queued after the commit so a
notification failure never undoes a sale.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, or_
from sqlalchemy.orm import Session

from nftmarket import config, crud
from nftmarket.db import utcnow
from nftmarket.errors import BusinessRuleError, Forbidden, InsufficientBalance, NotFound, ValidationFailed
from nftmarket.models import (
    User, NFT, Collection, NFTListing, Bid, Transaction, Trade, TradeItem,
    Blockchain, ListingStatus, BidStatus, TradeStatus, TradeSide, NotificationType,
)
from nftmarket.models.wallet_utils import to_money
from nftmarket.services.notifications_service import notify
from nftmarket.services.search import fuzzy_filter
from nftmarket.services.wallet_service import WalletService

log = logging.getLogger("nftmarket.market")

LISTING_SORT_FIELDS = ("price", "bestOffer", "listingPrice", "lastListed")
BID_SORT_FIELDS = ("price", "expiration", "createdAt")

Notice = Tuple[str, str, str, NotificationType]


def _f(value) -> float:
    return float(to_money(value))


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def bid_expiration(bid: Bid) -> datetime:
    return bid.created_at + timedelta(days=config.BID_EXPIRY_DAYS)


def listing_to_dict(l: NFTListing) -> Dict[str, Any]:
    return {
        "id": l.id,
        "nftId": l.nft_id,
        "sellerWallet": l.seller_wallet,
        "contractAddress": l.contract_address,
        "price": _f(l.price),
        "status": l.status.value,
        "dropAt": l.drop_at,
        "createdAt": l.created_at,
    }


def bid_to_dict(b: Bid) -> Dict[str, Any]:
    return {
        "id": b.id,
        "listingId": b.listing_id,
        "bidderWallet": b.bidder_wallet,
        "price": _f(b.price),
        "status": b.status.value,
        "createdAt": b.created_at,
        "expiration": bid_expiration(b),
    }


def transaction_to_dict(t: Transaction) -> Dict[str, Any]:
    return {
        "id": t.id,
        "listingId": t.listing_id,
        "buyerWallet": t.buyer_wallet,
        "sellerWallet": t.seller_wallet,
        "price": _f(t.price),
        "royaltyAmount": _f(t.royalty_amount),
        "network": t.network,
        "status": t.status.value,
        "createdAt": t.created_at,
    }


def trade_to_dict(t: Trade) -> Dict[str, Any]:
    return {
        "id": t.id,
        "offererWallet": t.offerer_wallet,
        "takerWallet": t.taker_wallet,
        "status": t.status.value,
        "offerTime": t.offer_time,
        "exchangeTime": t.exchange_time,
        "tradeItems": [{"nftId": i.nft_id, "side": i.side.value} for i in t.items],
    }


class MarketService:
    def __init__(self, db: Session, user: Optional[User] = None):
        self.db = db
        self.user = user

    @property
    def wallet(self) -> str:
        return self.user.wallet_address

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _send(self, notices: Iterable[Notice]) -> None:
        """Queue notifications after the business transaction has committed."""
        try:
            for wallet, title, message, type_ in notices:
                notify(self.db, wallet, title, message, type_)
            self.db.commit()
        except Exception:
            self.db.rollback()
            log.exception("Failed to queue notifications")

    def _listing(self, listing_id: int) -> NFTListing:
        return crud.require(self.db, NFTListing, listing_id, "No such listing")

    def highest_bid(self, listing_id: int) -> Optional[Bid]:
        return self.db.execute(
            select(Bid)
            .where(Bid.listing_id == listing_id, Bid.status == BidStatus.ACTIVE)
            .order_by(Bid.price.desc(), Bid.created_at.asc())
        ).scalars().first()

    # ======================================================
    # LISTINGS
    # ======================================================
    def create_listing(self, nft_id: int, price, contract_address: str,
                       drop_at: Optional[datetime] = None) -> Dict[str, Any]:
        price = to_money(price)
        if price <= 0:
            raise ValidationFailed("Price must be a positive number")
        nft = crud.require(self.db, NFT, nft_id, "No such NFT")
        if nft.owner_wallet != self.wallet:
            raise BusinessRuleError("You are not the owner of this NFT")
        open_listing = self.db.execute(
            select(NFTListing).where(
                NFTListing.nft_id == nft.id,
                NFTListing.seller_wallet == nft.owner_wallet,
                NFTListing.status.in_([ListingStatus.SCHEDULED, ListingStatus.ACTIVE]),
            )
        ).scalars().first()
        if open_listing is not None:
            raise BusinessRuleError("NFT is already listed")

        now = utcnow()
        drop_at = naive_utc(drop_at)
        scheduled = drop_at is not None and drop_at > now
        listing = NFTListing(
            nft_id=nft.id,
            seller_wallet=self.wallet,
            contract_address=contract_address,
            price=price,
            status=ListingStatus.SCHEDULED if scheduled else ListingStatus.ACTIVE,
            drop_at=drop_at if scheduled else now,
        )
        self.db.add(listing)
        self._commit()
        log.info("Listing %s created for NFT %s (%s)", listing.id, nft.id, listing.status.value)

        message = "Listing was successfully scheduled" if scheduled else "Listing was successfully created"
        self._send([(self.wallet, "Listing", message, NotificationType.MINT)])
        return listing_to_dict(listing)

    def buy_listing(self, listing_id: int) -> Dict[str, Any]:
        listing = self._listing(listing_id)
        if listing.status != ListingStatus.ACTIVE:
            raise BusinessRuleError("Listing is not available for purchase")
        if listing.seller_wallet == self.wallet:
            raise BusinessRuleError("You can't buy your own listing")
        nft = listing.nft
        if nft.owner_wallet != listing.seller_wallet:
            raise BusinessRuleError("Seller no longer owns this NFT")
        if to_money(self.user.balance) < to_money(listing.price):
            raise InsufficientBalance()

        try:
            txn = WalletService(self.db).settle_sale(listing, self.wallet, listing.price)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self._send([
            (self.wallet, "Purchase", f"You successfully bought {nft.name} for {_f(txn.price)}",
             NotificationType.PURCHASE),
            (txn.seller_wallet, "Item sold", f"Your {nft.name} was sold for {_f(txn.price)}",
             NotificationType.ITEM_SOLD),
        ])
        return {"message": "You successfully bought NFT", "transaction": transaction_to_dict(txn)}

    # ======================================================
    # BIDS
    # ======================================================
    def place_bid(self, listing_id: int, price) -> Dict[str, Any]:
        price = to_money(price)
        if price <= 0:
            raise ValidationFailed("Price must be a positive number")
        listing = crud.lock(self.db, NFTListing, listing_id, "No such listing")
        if listing.status != ListingStatus.ACTIVE:
            raise BusinessRuleError("Listing is not active")
        if listing.seller_wallet == self.wallet:
            raise BusinessRuleError("You can't bid on your own listing")
        if to_money(self.user.balance) < price:
            raise InsufficientBalance()

        highest = self.highest_bid(listing.id)
        if highest is not None and price <= to_money(highest.price):
            raise BusinessRuleError("Bid is too low")

        notices: List[Notice] = []
        try:
            outbid = self.db.execute(
                select(Bid).where(Bid.listing_id == listing.id, Bid.status == BidStatus.ACTIVE)
            ).scalars().all()
            for old in outbid:
                crud.claim_status(self.db, "Bid", old, BidStatus.REJECTED)
                if old.bidder_wallet != self.wallet:
                    notices.append((old.bidder_wallet, "Outbid",
                                    f"Your bid on {listing.nft.name} was outbid", NotificationType.OUTBID))

            if price > to_money(listing.price):
                listing.price = price

            bid = Bid(listing_id=listing.id, bidder_wallet=self.wallet, price=price)
            self.db.add(bid)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        notices.append((listing.nft.owner_wallet, "Best offer",
                        f"New best offer of {_f(price)} on {listing.nft.name}", NotificationType.BESTOFFER))
        self._send(notices)
        log.info("Bid %s placed on listing %s at %s", bid.id, listing.id, price)
        return bid_to_dict(bid)

    def respond_to_bid(self, bid_id: int, accepted: bool) -> Dict[str, Any]:
        bid = crud.require(self.db, Bid, bid_id, "No such bid")
        listing = bid.listing
        is_seller = listing.seller_wallet == self.wallet
        is_bidder = bid.bidder_wallet == self.wallet

        if accepted and is_bidder:
            raise Forbidden("You can't accept your own bid")
        if not (is_seller or is_bidder):
            raise Forbidden("Only the seller can respond to this bid")
        if bid.status != BidStatus.ACTIVE:
            raise BusinessRuleError("Bid is no longer active")

        if not accepted:
            try:
                crud.claim_status(self.db, "Bid", bid, BidStatus.REJECTED)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            if is_seller:
                self._send([(bid.bidder_wallet, "Offer", f"Your bid on {listing.nft.name} was rejected",
                             NotificationType.OFFER)])
            return bid_to_dict(bid)

        if listing.status != ListingStatus.ACTIVE:
            raise BusinessRuleError("Listing is not active")
        nft = listing.nft
        if nft.owner_wallet != listing.seller_wallet:
            raise BusinessRuleError("Seller no longer owns this NFT")

        try:
            crud.claim_status(self.db, "Bid", bid, BidStatus.ACCEPTED)
            txn = WalletService(self.db).settle_sale(listing, bid.bidder_wallet, bid.price, accepted_bid=bid)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self._send([
            (bid.bidder_wallet, "Purchase", f"Your bid on {nft.name} was accepted. You bought it for {_f(txn.price)}",
             NotificationType.PURCHASE),
            (listing.seller_wallet, "Item sold", f"Your {nft.name} was sold for {_f(txn.price)}",
             NotificationType.ITEM_SOLD),
        ])
        return dict(bid_to_dict(bid), transaction=transaction_to_dict(txn))

    # ======================================================
    # TRADES
    # ======================================================
    def create_trade(self, taker_wallet: str, offered_ids: List[int], requested_ids: List[int]) -> Dict[str, Any]:
        if taker_wallet == self.wallet:
            raise BusinessRuleError("You can't trade with yourself")
        crud.require_user(self.db, taker_wallet, "No such taker")
        if crud.friendship_between(self.db, self.wallet, taker_wallet) is None:
            raise BusinessRuleError("You can only trade with friends")
        if not offered_ids and not requested_ids:
            raise ValidationFailed("A trade needs at least one NFT")
        all_ids = list(offered_ids) + list(requested_ids)
        if len(set(all_ids)) != len(all_ids):
            raise ValidationFailed("An NFT can appear only once in a trade")

        self._check_owners(offered_ids, self.wallet, "You are not the owner of NFT {}")
        self._check_owners(requested_ids, taker_wallet, "Taker is not the owner of NFT {}")

        trade = Trade(offerer_wallet=self.wallet, taker_wallet=taker_wallet)
        trade.items = (
            [TradeItem(nft_id=i, side=TradeSide.OFFER) for i in offered_ids]
            + [TradeItem(nft_id=i, side=TradeSide.RECEIVER) for i in requested_ids]
        )
        self.db.add(trade)
        self._commit()
        log.info("Trade %s offered %s -> %s", trade.id, self.wallet, taker_wallet)

        self._send([(taker_wallet, "Trade offer", f"{self.user.nickname} offered you a trade",
                     NotificationType.TRANSFER)])
        return trade_to_dict(trade)

    def _check_owners(self, nft_ids: Iterable[int], owner: str, message: str) -> List[NFT]:
        nfts = []
        for nft_id in nft_ids:
            nft = self.db.get(NFT, nft_id)
            if nft is None:
                raise NotFound(f"No such NFT {nft_id}")
            if nft.owner_wallet != owner:
                raise BusinessRuleError(message.format(nft_id))
            nfts.append(nft)
        return nfts

    def respond_to_trade(self, trade_id: int, accepted: bool) -> Dict[str, Any]:
        trade = crud.require(self.db, Trade, trade_id, "No such trade")
        is_taker = trade.taker_wallet == self.wallet
        is_offerer = trade.offerer_wallet == self.wallet

        if accepted and not is_taker:
            raise Forbidden("Only the taker can accept a trade")
        if not (is_taker or is_offerer):
            raise Forbidden("You are not part of this trade")
        if trade.status != TradeStatus.PENDING:
            raise BusinessRuleError("Trade is no longer pending")

        if not accepted:
            try:
                crud.claim_status(self.db, "Trade", trade, TradeStatus.CANCELLED)
                trade.exchange_time = utcnow()
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            other = trade.offerer_wallet if is_taker else trade.taker_wallet
            self._send([(other, "Trade cancelled", f"Trade #{trade.id} was cancelled", NotificationType.TRANSFER)])
            return trade_to_dict(trade)

        try:
            offered = [i.nft_id for i in trade.items if i.side == TradeSide.OFFER]
            requested = [i.nft_id for i in trade.items if i.side == TradeSide.RECEIVER]
            offered_nfts = self._check_owners(offered, trade.offerer_wallet, "Offerer no longer owns NFT {}")
            requested_nfts = self._check_owners(requested, trade.taker_wallet, "Taker no longer owns NFT {}")

            crud.claim_status(self.db, "Trade", trade, TradeStatus.COMPLETED)
            notices = self._close_listings(offered_nfts + requested_nfts)
            for nft in offered_nfts:
                nft.owner_wallet = trade.taker_wallet
            for nft in requested_nfts:
                nft.owner_wallet = trade.offerer_wallet
            trade.exchange_time = utcnow()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        log.info("Trade %s completed", trade.id)
        message = f"Trade #{trade.id} was completed"
        notices += [
            (trade.offerer_wallet, "Trade completed", message, NotificationType.SUCCESSTRANSFER),
            (trade.taker_wallet, "Trade completed", message, NotificationType.SUCCESSTRANSFER),
        ]
        self._send(notices)
        return trade_to_dict(trade)

    def _close_listings(self, nfts: Iterable[NFT]) -> List[Notice]:
        """Cancel open listings on NFTs changing hands and reject their ACTIVE bids."""
        notices: List[Notice] = []
        by_id = {n.id: n for n in nfts}
        if not by_id:
            return notices
        listings = self.db.execute(
            select(NFTListing).where(
                NFTListing.nft_id.in_(list(by_id)),
                NFTListing.status.in_([ListingStatus.SCHEDULED, ListingStatus.ACTIVE]),
            )
        ).scalars().all()
        for listing in listings:
            crud.claim_status(self.db, "Listing", listing, ListingStatus.CANCELLED)
            bids = self.db.execute(
                select(Bid).where(Bid.listing_id == listing.id, Bid.status == BidStatus.ACTIVE)
            ).scalars().all()
            name = by_id[listing.nft_id].name
            for bid in bids:
                crud.claim_status(self.db, "Bid", bid, BidStatus.REJECTED)
                notices.append((bid.bidder_wallet, "Offer", f"{name} was traded; your bid was rejected",
                                NotificationType.OFFER))
            log.info("Listing %s cancelled by trade", listing.id)
        return notices

    # ======================================================
    # QUERIES
    # ======================================================
    def search_listings_by_wallet(self, wallet: str, nft_name: Optional[str] = None,
                                  collection_name: Optional[str] = None, min_price=None, max_price=None,
                                  blockchain: Optional[Blockchain] = None, status: Optional[str] = None,
                                  sort_criteria: Optional[str] = None,
                                  page: int = 1, limit: int = 10) -> Dict[str, Any]:
        criteria = crud.parse_sort_criteria(sort_criteria, LISTING_SORT_FIELDS)
        if status not in (None, "SOLD", "LISTED"):
            raise ValidationFailed("Status must be SOLD or LISTED")
        wanted = ListingStatus.SOLD if status == "SOLD" else ListingStatus.ACTIVE

        stmt = select(NFTListing).where(NFTListing.seller_wallet == wallet, NFTListing.status == wanted)
        if min_price is not None:
            stmt = stmt.where(NFTListing.price >= min_price)
        if max_price is not None:
            stmt = stmt.where(NFTListing.price <= max_price)
        listings = self.db.execute(stmt.order_by(NFTListing.id)).scalars().all()

        if nft_name:
            listings = fuzzy_filter(nft_name, listings, [lambda l: l.nft.name])
        if collection_name:
            listings = fuzzy_filter(collection_name, listings,
                                    [lambda l: l.nft.collection.name, lambda l: l.nft.collection.symbol])
        if blockchain is not None:
            listings = [l for l in listings if l.nft.collection.blockchain == blockchain]

        seller = crud.get_user(self.db, wallet)
        rows = []
        for l in listings:
            best = self.highest_bid(l.id)
            last_listed = self.db.execute(
                select(NFTListing.drop_at).where(NFTListing.nft_id == l.nft_id).order_by(NFTListing.drop_at.desc())
            ).scalars().first()
            rows.append({
                "id": l.id,
                "nftId": l.nft_id,
                "nftName": l.nft.name,
                "nftImage": l.nft.image,
                "collectionName": l.nft.collection.name,
                "sellerName": seller.nickname if seller else "Unknown",
                "sellerImage": seller.avatar if seller else "",
                "sellerWallet": l.seller_wallet,
                "price": _f(l.price),
                "listingPrice": _f(l.price),
                "bestOffer": _f(best.price) if best else 0.0,
                "status": l.status.value,
                "lastListed": last_listed,
            })
        return crud.paginate(crud.multi_sort(rows, criteria), page, limit, "listings")

    def active_listings(self, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        rows = self.db.execute(
            select(NFTListing).where(NFTListing.status == ListingStatus.ACTIVE)
            .order_by(NFTListing.created_at.desc(), NFTListing.id.desc())
        ).scalars().all()
        return crud.paginate([listing_to_dict(l) for l in rows], page, limit, "listings")

    def bids_by_owner(self, wallet: str, min_price=None, max_price=None, collection_name: Optional[str] = None,
                      status: Optional[str] = None, sort_criteria: Optional[str] = None,
                      page: int = 1, limit: int = 10) -> Dict[str, Any]:
        """Bids received on listings sold by ``wallet``."""
        criteria = crud.parse_sort_criteria(sort_criteria, BID_SORT_FIELDS)
        stmt = (
            select(Bid)
            .join(NFTListing, Bid.listing_id == NFTListing.id)
            .where(NFTListing.seller_wallet == wallet)
        )
        if min_price is not None:
            stmt = stmt.where(Bid.price >= min_price)
        if max_price is not None:
            stmt = stmt.where(Bid.price <= max_price)
        if collection_name:
            stmt = (stmt.join(NFT, NFTListing.nft_id == NFT.id)
                    .join(Collection, NFT.collection_id == Collection.id)
                    .where(Collection.name.ilike(f"%{collection_name}%")))
        if status == "ACTIVE":
            stmt = stmt.where(Bid.status == BidStatus.ACTIVE)
        elif status == "REJECTED":
            stmt = stmt.where(Bid.status == BidStatus.REJECTED)
        elif status == "EXPIRING":
            # still active and expiring inside the warning window
            horizon = utcnow() + timedelta(days=config.BID_EXPIRING_WINDOW_DAYS)
            stmt = stmt.where(Bid.status == BidStatus.ACTIVE,
                              Bid.created_at <= horizon - timedelta(days=config.BID_EXPIRY_DAYS))
        elif status is not None:
            raise ValidationFailed("Status must be ACTIVE, REJECTED or EXPIRING")

        bids = self.db.execute(stmt.order_by(Bid.id)).scalars().all()
        rows = [bid_to_dict(b) for b in bids]
        return crud.paginate(crud.multi_sort(rows, criteria), page, limit, "bids")

    def bids_by_listing(self, listing_id: int, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        listing = self._listing(listing_id)
        bids = self.db.execute(
            select(Bid).where(Bid.listing_id == listing.id).order_by(Bid.created_at.desc(), Bid.id.desc())
        ).scalars().all()
        return crud.paginate([bid_to_dict(b) for b in bids], page, limit, "bids")

    def current_bid(self, listing_id: int) -> Optional[Dict[str, Any]]:
        listing = self._listing(listing_id)
        bid = self.highest_bid(listing.id)
        return bid_to_dict(bid) if bid else None

    def transactions(self, wallet: str, role: str, min_price=None, max_price=None,
                     nft_name: Optional[str] = None, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        if role not in ("seller", "buyer"):
            raise ValidationFailed("Invalid role. Must be 'seller' or 'buyer'.")
        column = Transaction.seller_wallet if role == "seller" else Transaction.buyer_wallet
        stmt = select(Transaction).where(column == wallet)
        if min_price is not None:
            stmt = stmt.where(Transaction.price >= min_price)
        if max_price is not None:
            stmt = stmt.where(Transaction.price <= max_price)
        txns = self.db.execute(stmt.order_by(Transaction.created_at.desc(), Transaction.id.desc())).scalars().all()
        if nft_name:
            txns = fuzzy_filter(nft_name, txns, [lambda t: t.listing.nft.name])

        rows = []
        for t in txns:
            buyer = crud.get_user(self.db, t.buyer_wallet)
            seller = crud.get_user(self.db, t.seller_wallet)
            nft = t.listing.nft
            rows.append(dict(
                transaction_to_dict(t),
                nftId=nft.id,
                nftName=nft.name,
                nftImage=nft.image,
                buyerName=buyer.nickname if buyer else "Unknown Buyer",
                buyerImage=buyer.avatar if buyer else "",
                sellerName=seller.nickname if seller else "Unknown Seller",
                sellerImage=seller.avatar if seller else "",
            ))
        return crud.paginate(rows, page, limit, "transactions")

    def _trade_with_nfts(self, trade: Trade, direction: str) -> Dict[str, Any]:
        # "sent": what the offerer gives; "received": what the taker is asked for
        side = TradeSide.OFFER if direction == "sent" else TradeSide.RECEIVER
        out = trade_to_dict(trade)
        out["nfts"] = [
            {"id": i.nft.id, "name": i.nft.name, "image": i.nft.image, "price": _f(i.nft.price)}
            for i in trade.items if i.side == side and i.nft is not None
        ]
        return out

    def pending_trades(self, wallet: str, direction: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        if direction not in ("sent", "received"):
            raise ValidationFailed("Type must be 'sent' or 'received'")
        column = Trade.offerer_wallet if direction == "sent" else Trade.taker_wallet
        trades = self.db.execute(
            select(Trade).where(column == wallet, Trade.status == TradeStatus.PENDING)
            .order_by(Trade.offer_time.desc(), Trade.id.desc())
        ).scalars().all()
        return crud.paginate([self._trade_with_nfts(t, direction) for t in trades], page, limit, "trades")

    def trade_history(self, wallet: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        trades = self.db.execute(
            select(Trade)
            .where(or_(Trade.offerer_wallet == wallet, Trade.taker_wallet == wallet),
                   Trade.status != TradeStatus.PENDING)
            .order_by(Trade.exchange_time.desc(), Trade.id.desc())
        ).scalars().all()
        return crud.paginate([trade_to_dict(t) for t in trades], page, limit, "trades")
