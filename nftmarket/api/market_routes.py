# nftmarket/api/market_routes.py
import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from nftmarket.db import get_db
from nftmarket.deps import get_current_user
from nftmarket.errors import MarketplaceError
from nftmarket.models import Blockchain
from nftmarket.schemas import (
    ListingCreate, ListingBuy, BidCreate, BidRespond, TradeCreate, TradeRespond, WALLET_PATTERN,
)
from nftmarket.services.market_service import MarketService

log = logging.getLogger("nftmarket.api.market")

router = APIRouter(prefix="/market", tags=["market"])


def _server_error(db: Session, what: str, *args):
    db.rollback()
    log.exception(what, *args)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


# ==============================
# LISTINGS
# ==============================
@router.post("/listing", status_code=status.HTTP_201_CREATED)
def create_listing(payload: ListingCreate, db: Session = Depends(get_db), user=Depends(get_current_user)):
    try:
        return MarketService(db, user).create_listing(
            payload.nft_id, payload.price, payload.contract_address, payload.drop_at,
        )
    except (HTTPException, MarketplaceError):
        raise
    except Exception:
        raise _server_error(db, "Failed to list NFT %s", payload.nft_id)


@router.post("/listing/buy")
def buy_listing(payload: ListingBuy, db: Session = Depends(get_db), user=Depends(get_current_user)):
    try:
        return MarketService(db, user).buy_listing(payload.listing_id)
    except (HTTPException, MarketplaceError):
        raise
    except Exception:
        raise _server_error(db, "Purchase of listing %s failed", payload.listing_id)


@router.get("/listing")
def listings_by_wallet(
    walletAddress: str = Query(..., pattern=WALLET_PATTERN),
    nftName: Optional[str] = None,
    collectionName: Optional[str] = None,
    minPrice: Optional[Decimal] = None,
    maxPrice: Optional[Decimal] = None,
    blockchain: Optional[Blockchain] = None,
    listingStatus: Optional[str] = Query(None, alias="status"),
    sortCriteria: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return MarketService(db).search_listings_by_wallet(
        walletAddress, nftName, collectionName, minPrice, maxPrice, blockchain, listingStatus,
        sortCriteria, page, limit,
    )


@router.get("/listing/all")
def active_listings(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db)):
    return MarketService(db).active_listings(page, limit)


# ==============================
# BIDS
# ==============================
@router.post("/bid", status_code=status.HTTP_201_CREATED)
def place_bid(payload: BidCreate, db: Session = Depends(get_db), user=Depends(get_current_user)):
    try:
        return MarketService(db, user).place_bid(payload.listing_id, payload.price)
    except (HTTPException, MarketplaceError):
        raise
    except Exception:
        raise _server_error(db, "Bid on listing %s failed", payload.listing_id)


@router.put("/bid")
def respond_to_bid(payload: BidRespond, db: Session = Depends(get_db), user=Depends(get_current_user)):
    try:
        return MarketService(db, user).respond_to_bid(payload.id, payload.accepted)
    except (HTTPException, MarketplaceError):
        raise
    except Exception:
        raise _server_error(db, "Updating bid %s failed", payload.id)


@router.get("/bid")
def bids_by_owner(
    walletAddress: str = Query(..., pattern=WALLET_PATTERN),
    minPrice: Optional[Decimal] = None,
    maxPrice: Optional[Decimal] = None,
    collectionName: Optional[str] = None,
    bidStatus: Optional[str] = Query(None, alias="status"),
    sortCriteria: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return MarketService(db).bids_by_owner(
        walletAddress, minPrice, maxPrice, collectionName, bidStatus, sortCriteria, page, limit,
    )


@router.get("/bid/listing")
def bids_by_listing(
    listingId: int = Query(...),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return MarketService(db).bids_by_listing(listingId, page, limit)


@router.get("/bid/current")
def current_bid(listingId: int = Query(...), db: Session = Depends(get_db)):
    return {"bid": MarketService(db).current_bid(listingId)}


# ==============================
# TRANSACTIONS
# ==============================
@router.get("/transactions")
def transactions(
    walletAddress: str = Query(..., pattern=WALLET_PATTERN),
    role: str = Query("buyer"),
    minPrice: Optional[Decimal] = None,
    maxPrice: Optional[Decimal] = None,
    nftName: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return MarketService(db).transactions(walletAddress, role, minPrice, maxPrice, nftName, page, limit)


# ==============================
# TRADES
# ==============================
@router.post("/trade", status_code=status.HTTP_201_CREATED)
def create_trade(payload: TradeCreate, db: Session = Depends(get_db), user=Depends(get_current_user)):
    try:
        return MarketService(db, user).create_trade(
            payload.taker_wallet, payload.offered_nft_ids, payload.requested_nft_ids,
        )
    except (HTTPException, MarketplaceError):
        raise
    except Exception:
        raise _server_error(db, "Trade offer to %s failed", payload.taker_wallet)


@router.put("/trade")
def respond_to_trade(payload: TradeRespond, db: Session = Depends(get_db), user=Depends(get_current_user)):
    try:
        return MarketService(db, user).respond_to_trade(payload.trade_id, payload.accepted)
    except (HTTPException, MarketplaceError):
        raise
    except Exception:
        raise _server_error(db, "Updating trade %s failed", payload.trade_id)


@router.get("/trades")
def pending_trades(
    type: str = Query("received"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    return MarketService(db, user).pending_trades(user.wallet_address, type, page, limit)


@router.get("/trade/all")
def trade_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    return MarketService(db, user).trade_history(user.wallet_address, page, limit)
