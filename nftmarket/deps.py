# nftmarket/deps.py
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status, Header, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, ExpiredSignatureError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from nftmarket import config, crud
from nftmarket.db import get_db
from nftmarket.models import User
from nftmarket.security import decode_token

bearer_scheme = HTTPBearer(auto_error=False)


# ======================================================
# AUTHENTICATED USER DEPENDENCY (JWT BASED)
# ======================================================
def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the bearer access token to a User row loaded in the request session.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        wallet = decode_token(credentials.credentials)
    except ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = crud.get_user(db, wallet)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user


# ======================================================
# API KEY BASED ADMIN
# ======================================================
def require_admin_key(
    x_api_key: Optional[str] = Header(None),
):
    """
    Admin auth using API Key.
    Used for balance top-ups and internal tools.
    """
    if not x_api_key or x_api_key != config.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin API key",
        )
    return True


# ======================================================
# MULTIPART HELPERS
# ======================================================
def read_upload(upload: Optional[UploadFile]) -> Optional[Dict[str, Any]]:
    """Turn an UploadFile into the plain dict the storage services take."""
    if upload is None or not upload.filename:
        return None
    return {
        "filename": upload.filename,
        "content": upload.file.read(),
        "content_type": upload.content_type,
    }


def validate_form(model, **fields):
    """Validate multipart form fields with a request schema; failures are 422 like JSON bodies."""
    try:
        return model.model_validate({k: v for k, v in fields.items() if v is not None})
    except ValidationError as e:
        raise RequestValidationError(e.errors())
