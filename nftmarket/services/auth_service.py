# nftmarket/services/auth_service.py
"""
Wallet sign-in and token rotation.

A wallet asks for a nonce, signs it with its key (EIP-191 personal sign) and
exchanges the signature for an access/refresh token pair. Each wallet keeps
one refresh token; using it rotates it, so a replayed refresh token fails.
"""
import logging
from typing import Any, Dict, Optional

from jose import JWTError
from sqlalchemy import select
from sqlalchemy.orm import Session

from nftmarket import config, crud
from nftmarket.db import utcnow
from nftmarket.errors import Unauthorized
from nftmarket.models import AuthNonce, RefreshToken
from nftmarket.security import (
    REFRESH,
    create_access_token,
    create_refresh_token,
    decode_token,
    new_nonce,
    signature_matches,
    verify_password,
)
from nftmarket.services.user_service import user_to_dict, validate_wallet

log = logging.getLogger("nftmarket.auth")


class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def _nonce_row(self, wallet: str) -> Optional[AuthNonce]:
        return self.db.execute(
            select(AuthNonce).where(AuthNonce.wallet_address == wallet)
        ).scalar_one_or_none()

    def _store_nonce(self, wallet: str) -> str:
        row = self._nonce_row(wallet)
        value = new_nonce()
        if row is None:
            self.db.add(AuthNonce(wallet_address=wallet, nonce=value))
        else:
            row.nonce = value
        return value

    def _issue(self, wallet: str) -> Dict[str, Any]:
        access = create_access_token(wallet)
        refresh, expires_at = create_refresh_token(wallet)
        row = self.db.execute(
            select(RefreshToken).where(RefreshToken.wallet_address == wallet)
        ).scalar_one_or_none()
        if row is None:
            self.db.add(RefreshToken(wallet_address=wallet, token=refresh, expires_at=expires_at))
        else:
            row.token = refresh
            row.expires_at = expires_at
        return {"accessToken": access, "refreshToken": refresh, "tokenType": "bearer"}

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # -------------------------
    # Nonce + signature
    # -------------------------
    def issue_nonce(self, address: str) -> Dict[str, str]:
        wallet = validate_wallet(address)
        crud.require_user(self.db, wallet)
        value = self._store_nonce(wallet)
        self._commit()
        return {"nonce": value}

    def signin(self, address: str, signature: str) -> Dict[str, Any]:
        wallet = validate_wallet(address)
        user = crud.require_user(self.db, wallet)
        row = self._nonce_row(wallet)
        if row is None:
            raise Unauthorized("Request a nonce first")
        if not signature_matches(wallet, row.nonce, signature):
            log.info("Signature mismatch for %s", wallet)
            raise Unauthorized("Invalid signature")

        # the signed nonce is single use
        row.nonce = new_nonce()
        tokens = self._issue(wallet)
        self._commit()
        log.info("Wallet %s signed in", wallet)
        return dict(tokens, user=user_to_dict(user, private=True))

    # -------------------------
    # Password login
    # -------------------------
    def login(self, wallet_address: str, password: str) -> Dict[str, Any]:
        user = crud.get_user(self.db, wallet_address)
        if user is None or not verify_password(password, user.hashed_password):
            raise Unauthorized("Invalid credentials")
        tokens = self._issue(user.wallet_address)
        self._commit()
        return dict(tokens, user=user_to_dict(user, private=True))

    # -------------------------
    # Refresh / logout
    # -------------------------
    def refresh(self, token: Optional[str]) -> Dict[str, Any]:
        if not token:
            raise Unauthorized("Refresh token missing")
        try:
            wallet = decode_token(token, REFRESH)
        except JWTError:
            raise Unauthorized("Invalid refresh token")

        row = self.db.execute(
            select(RefreshToken).where(RefreshToken.wallet_address == wallet)
        ).scalar_one_or_none()
        if row is None or row.token != token or row.expires_at <= utcnow():
            raise Unauthorized("Invalid refresh token")

        tokens = self._issue(wallet)
        self._commit()
        return tokens

    def logout(self, wallet: str) -> Dict[str, str]:
        self.db.query(RefreshToken).filter(RefreshToken.wallet_address == wallet).delete(synchronize_session=False)
        self._commit()
        return {"message": "Logged out"}


def cookie_max_age() -> int:
    return config.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600
