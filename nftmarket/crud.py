# nftmarket/crud.py
"""
Shared query helpers used by the services.

 - lookups that raise ``NotFound`` instead of returning None
 - ``claim_status``: a guarded status update (``WHERE status = :current``)
   that fails when another request already moved the row
 - pagination and ``field:order`` multi-sort over in-memory result sets

None of these commit; the calling service owns the transaction.
"""
import math
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, update, or_, and_
from sqlalchemy.orm import Session

from nftmarket import models
from nftmarket.errors import NotFound, ValidationFailed, BusinessRuleError
from nftmarket.models.states import advance

SortCriteria = List[Tuple[str, str]]


# -------------------------
# Lookups
# -------------------------
def get_user(db: Session, wallet: str) -> Optional[models.User]:
    return db.execute(
        select(models.User).where(models.User.wallet_address == wallet)
    ).scalar_one_or_none()


def require_user(db: Session, wallet: str, message: str = "No such user") -> models.User:
    user = get_user(db, wallet)
    if user is None:
        raise NotFound(message)
    return user


def require(db: Session, model, row_id: int, message: str):
    row = db.get(model, row_id)
    if row is None:
        raise NotFound(message)
    return row


def lock(db: Session, model, row_id: int, message: str):
    """Like ``require`` but reads the row ``FOR UPDATE`` (ignored by SQLite)."""
    row = db.execute(
        select(model).where(model.id == row_id).with_for_update()
    ).scalars().first()
    if row is None:
        raise NotFound(message)
    return row


def friendship_between(db: Session, a: str, b: str) -> Optional[models.Friendship]:
    F = models.Friendship
    return db.execute(
        select(F).where(
            or_(
                and_(F.user1_wallet == a, F.user2_wallet == b),
                and_(F.user1_wallet == b, F.user2_wallet == a),
            )
        )
    ).scalars().first()


# -------------------------
# Guarded status updates
# -------------------------
def claim_status(db: Session, entity: str, row, target) -> None:
    """
    Move ``row`` to ``target`` only if its status is still what we read.

    Validates the transition table first, then issues
    ``UPDATE ... SET status = :target WHERE id = :id AND status = :current``.
    Zero affected rows means a concurrent request got there first.
    """
    current = row.status
    advance(entity, current, target)
    model = type(row)
    result = db.execute(
        update(model)
        .where(model.id == row.id, model.status == current)
        .values(status=target)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise BusinessRuleError(f"{entity} was modified by another request")
    row.status = target


# -------------------------
# Paging / sorting
# -------------------------
def page_window(page: int, limit: int) -> Tuple[int, int]:
    page = max(int(page or 1), 1)
    limit = max(int(limit or 10), 1)
    return page, limit


def paginate(rows: Sequence[Any], page: int, limit: int, key: str) -> Dict[str, Any]:
    """Slice an already-filtered result set into the paged response shape."""
    page, limit = page_window(page, limit)
    total = len(rows)
    skip = (page - 1) * limit
    return {
        "total": total,
        "page": page,
        "totalPages": math.ceil(total / limit),
        key: list(rows[skip:skip + limit]),
    }


def parse_sort_criteria(raw: Optional[str], allowed: Iterable[str]) -> SortCriteria:
    """Parse ``price:asc,createdAt:desc`` into ``[("price", "asc"), ...]``."""
    if not raw:
        return []
    allowed = set(allowed)
    criteria: SortCriteria = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        field, _, order = part.partition(":")
        order = (order or "asc").lower()
        if field not in allowed:
            raise ValidationFailed(f"Unsupported sort field: {field}")
        if order not in ("asc", "desc"):
            raise ValidationFailed(f"Unsupported sort order: {order}")
        criteria.append((field, order))
    return criteria


def _sort_value(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    return 0.0


def multi_sort(rows: List[Dict[str, Any]], criteria: SortCriteria) -> List[Dict[str, Any]]:
    # stable sorts applied from the least significant criterion up
    for field, order in reversed(criteria):
        rows = sorted(rows, key=lambda r: _sort_value(r.get(field)), reverse=(order == "desc"))
    return rows
