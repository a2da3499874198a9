# nftmarket/api/auth_routes.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from nftmarket import config
from nftmarket.db import get_db
from nftmarket.deps import get_current_user
from nftmarket.errors import MarketplaceError
from nftmarket.schemas import SigninPayload, LoginPayload, RefreshPayload
from nftmarket.services.auth_service import AuthService, cookie_max_age

log = logging.getLogger("nftmarket.api.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_response(request: Request, tokens: dict) -> JSONResponse:
    resp = JSONResponse(jsonable_encoder(tokens))
    resp.set_cookie(
        config.REFRESH_COOKIE_NAME,
        tokens["refreshToken"],
        httponly=True,
        samesite="lax",
        # browsers drop secure cookies on plain-http localhost
        secure=request.url.scheme == "https",
        max_age=cookie_max_age(),
        path="/",
    )
    return resp


@router.get("/nonce")
def get_nonce(address: str = Query(...), db: Session = Depends(get_db)):
    return AuthService(db).issue_nonce(address)


@router.post("/signin")
def signin(payload: SigninPayload, request: Request, db: Session = Depends(get_db)):
    try:
        tokens = AuthService(db).signin(payload.address, payload.signature)
        return _token_response(request, tokens)
    except (HTTPException, MarketplaceError):
        raise
    except Exception:
        db.rollback()
        log.exception("Unexpected error in signin for %s", payload.address)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


@router.post("/login")
def login(payload: LoginPayload, request: Request, db: Session = Depends(get_db)):
    try:
        tokens = AuthService(db).login(payload.wallet_address, payload.password)
        return _token_response(request, tokens)
    except (HTTPException, MarketplaceError):
        raise
    except Exception:
        db.rollback()
        log.exception("Unexpected error in login for %s", payload.wallet_address)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


@router.post("/refresh")
def refresh(request: Request, payload: Optional[RefreshPayload] = None, db: Session = Depends(get_db)):
    """Refresh token from the HTTP-only cookie, or from the body for non-browser clients."""
    token = request.cookies.get(config.REFRESH_COOKIE_NAME)
    if not token and payload is not None:
        token = payload.refresh_token
    try:
        tokens = AuthService(db).refresh(token)
        return _token_response(request, tokens)
    except (HTTPException, MarketplaceError):
        raise
    except Exception:
        db.rollback()
        log.exception("Unexpected error refreshing token")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


@router.post("/logout")
def logout(db: Session = Depends(get_db), user=Depends(get_current_user)):
    result = AuthService(db).logout(user.wallet_address)
    resp = JSONResponse(result)
    resp.delete_cookie(config.REFRESH_COOKIE_NAME, path="/")
    return resp
