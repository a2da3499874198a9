# nftmarket/api/users_routes.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from nftmarket.db import get_db
from nftmarket.deps import get_current_user, require_admin_key, read_upload, validate_form
from nftmarket.errors import MarketplaceError
from nftmarket.schemas import UserCreate, UserUpdate, PreferencesUpdate, BalanceCredit
from nftmarket.services.user_service import UserService
from nftmarket.services.wallet_service import WalletService

log = logging.getLogger("nftmarket.api.users")

router = APIRouter(prefix="/users", tags=["users"])


@router.get("")
def list_users(
    query: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return UserService(db).list_users(query, page, limit)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user(
    walletAddress: str = Form(...),
    email: str = Form(...),
    nickname: str = Form(...),
    password: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
):
    data = validate_form(UserCreate, walletAddress=walletAddress, email=email, nickname=nickname, password=password)
    try:
        return UserService(db).create_user(
            data.wallet_address, data.email, data.nickname, data.password, avatar=read_upload(avatar),
        )
    except (HTTPException, MarketplaceError):
        raise
    except Exception:
        db.rollback()
        log.exception("Failed to create user %s", walletAddress)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


# /me routes must be registered before /{wallet}
@router.get("/me/balance")
def my_balance(db: Session = Depends(get_db), user=Depends(get_current_user)):
    return WalletService(db, user).get_balance()


@router.put("/me/preferences")
def update_preferences(payload: PreferencesUpdate, db: Session = Depends(get_db), user=Depends(get_current_user)):
    prefs = payload.model_dump(by_alias=True, exclude_none=True)
    return UserService(db, user).update_preferences(prefs)


@router.get("/{wallet}")
def get_user(wallet: str, db: Session = Depends(get_db)):
    return UserService(db).get_user(wallet)


@router.put("/{wallet}")
def update_user(
    wallet: str,
    nickname: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    data = validate_form(UserUpdate, nickname=nickname, email=email)
    try:
        return UserService(db, user).update_user(wallet, data.nickname, data.email, avatar=read_upload(avatar))
    except (HTTPException, MarketplaceError):
        raise
    except Exception:
        db.rollback()
        log.exception("Failed to update user %s", wallet)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


@router.delete("/{wallet}")
def delete_user(wallet: str, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return UserService(db, user).delete_user(wallet)


@router.get("/{wallet}/profit")
def profit(wallet: str, hours: int = Query(24, ge=1), db: Session = Depends(get_db)):
    return UserService(db).calculate_profit(wallet, hours)


@router.post("/{wallet}/balance", dependencies=[Depends(require_admin_key)])
def credit_balance(wallet: str, payload: BalanceCredit, db: Session = Depends(get_db)):
    try:
        return WalletService(db).credit_balance(wallet, payload.amount)
    except (HTTPException, MarketplaceError):
        raise
    except Exception:
        db.rollback()
        log.exception("Failed to credit %s", wallet)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
