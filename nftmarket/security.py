# nftmarket/security.py
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from eth_account import Account
from eth_account.messages import encode_defunct
from jose import jwt, JWTError
from passlib.context import CryptContext

from nftmarket import config

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS = "access"
REFRESH = "refresh"


# --------------------------------------------------
# PASSWORD HELPERS
# --------------------------------------------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


# --------------------------------------------------
# TOKEN HELPERS
# --------------------------------------------------
def _encode(wallet: str, token_type: str, expires: timedelta) -> Tuple[str, datetime]:
    now = datetime.now(timezone.utc)
    expire = now + expires
    payload: Dict[str, Any] = {
        "sub": wallet,
        "type": token_type,
        "iat": now,
        "exp": expire,
        # unique per token so two refreshes in the same second still differ
        "jti": secrets.token_hex(8),
    }
    token = jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
    return token, expire.replace(tzinfo=None)


def create_access_token(wallet: str) -> str:
    token, _ = _encode(wallet, ACCESS, timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    return token


def create_refresh_token(wallet: str) -> Tuple[str, datetime]:
    """Returns the token and its naive-UTC expiry for storage."""
    return _encode(wallet, REFRESH, timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS))


def decode_token(token: str, token_type: str = ACCESS) -> str:
    """
    Return the wallet in ``sub``. Raises ``jose.ExpiredSignatureError`` or
    ``jose.JWTError`` for bad tokens, including a token of the wrong type.
    """
    payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    if payload.get("type") != token_type or not payload.get("sub"):
        raise JWTError("Wrong token type")
    return payload["sub"]


# --------------------------------------------------
# WALLET SIGNATURES
# --------------------------------------------------
def new_nonce() -> str:
    return secrets.token_hex(16)


def recover_signer(message: str, signature: str) -> str:
    """Address that produced an EIP-191 personal-sign ``signature`` over ``message``."""
    if not signature.startswith("0x"):
        signature = "0x" + signature
    return Account.recover_message(encode_defunct(text=message), signature=signature)


def signature_matches(wallet: str, message: str, signature: str) -> bool:
    try:
        return recover_signer(message, signature).lower() == wallet.lower()
    except Exception:  # malformed signature
        return False
