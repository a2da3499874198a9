# nftmarket/api/nft_routes.py
import json
import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from nftmarket.db import get_db
from nftmarket.deps import get_current_user, read_upload
from nftmarket.errors import MarketplaceError, ValidationFailed
from nftmarket.models import Blockchain
from nftmarket.schemas import TraitIn, TokenIdUpdate, WALLET_PATTERN
from nftmarket.services.nft_service import NFTService

log = logging.getLogger("nftmarket.api.nfts")

router = APIRouter(tags=["nfts"])


def _parse_traits(raw: Optional[str]):
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        raise ValidationFailed("Traits must be a JSON array")
    if not isinstance(data, list):
        raise ValidationFailed("Traits must be a JSON array")
    try:
        traits = [TraitIn.model_validate(t) for t in data]
    except ValidationError as e:
        raise RequestValidationError(e.errors())
    return [{"traitType": t.trait_type, "value": t.value} for t in traits]


def _split(raw: Optional[str]):
    return [p.strip() for p in raw.split(",") if p.strip()] if raw else None


# ==============================
# MINTING
# ==============================
@router.post("/collection", status_code=status.HTTP_201_CREATED)
def create_collection(
    name: str = Form(..., min_length=1, max_length=100),
    symbol: str = Form(..., min_length=1, max_length=20),
    contractAddress: str = Form(..., pattern=WALLET_PATTERN),
    blockchain: Blockchain = Form(...),
    royalties: Decimal = Form(Decimal("0"), ge=0),
    image: UploadFile = File(...),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    try:
        return NFTService(db, user).create_collection(
            name, symbol, contractAddress, blockchain, royalties, read_upload(image),
        )
    except (HTTPException, MarketplaceError):
        raise
    except Exception:
        db.rollback()
        log.exception("Failed to create collection %s", name)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


@router.post("/nft", status_code=status.HTTP_201_CREATED)
def create_nft(
    collectionId: int = Form(...),
    name: str = Form(..., min_length=1, max_length=100),
    price: Decimal = Form(..., ge=0),
    description: Optional[str] = Form(None),
    quantity: int = Form(1, ge=1),
    traits: Optional[str] = Form(None),
    image: UploadFile = File(...),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    try:
        return NFTService(db, user).create_nft(
            collectionId, name, price, read_upload(image),
            description=description, quantity=quantity, traits=_parse_traits(traits),
        )
    except (HTTPException, MarketplaceError, RequestValidationError):
        raise
    except Exception:
        db.rollback()
        log.exception("Failed to mint NFT %s", name)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


@router.put("/nft")
def set_token_id(payload: TokenIdUpdate, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return NFTService(db, user).set_token_id(payload.nft_id, payload.token_id)


# ==============================
# NFT READS
# ==============================
@router.get("/nft")
def get_nft(id: int = Query(...), db: Session = Depends(get_db)):
    return NFTService(db).get_nft(id)


@router.get("/nfts")
def list_nfts(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db)):
    return NFTService(db).list_nfts(page, limit)


@router.get("/nft/search")
def search_nfts(
    query: Optional[str] = None,
    collectionId: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return NFTService(db).search_nfts(query, collectionId, page, limit)


@router.get("/nft/user")
def nfts_by_owner(
    walletAddress: str = Query(..., pattern=WALLET_PATTERN),
    query: Optional[str] = None,
    minPrice: Optional[Decimal] = None,
    maxPrice: Optional[Decimal] = None,
    blockchain: Optional[Blockchain] = None,
    nftStatus: Optional[str] = Query(None, alias="status"),
    sortCriteria: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return NFTService(db).nfts_by_owner(
        walletAddress, query, minPrice, maxPrice, blockchain, nftStatus, sortCriteria, page, limit,
    )


# ==============================
# COLLECTIONS
# ==============================
@router.get("/collection")
def get_collection(id: int = Query(...), db: Session = Depends(get_db)):
    return NFTService(db).get_collection(id)


@router.get("/collection/activities")
def collection_activities(
    id: int = Query(...),
    eventTypes: Optional[str] = Query(None, description="Comma separated: Mint,Sale,Offer,Transfer"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return NFTService(db).collection_activities(id, _split(eventTypes), page, limit)


@router.get("/collections")
def list_collections(
    creatorWallet: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return NFTService(db).list_collections(creatorWallet, page, limit)


@router.get("/collections/search")
def search_collections(
    query: Optional[str] = None,
    sortCriteria: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return NFTService(db).search_collections(query, sortCriteria, page, limit)
