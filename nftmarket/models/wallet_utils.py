# nftmarket/models/wallet_utils.py
"""
Balance helpers used by settlement.

None of these commit. Callers wrap them in one session transaction so a
failure anywhere rolls every balance change back together.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from nftmarket.errors import InsufficientBalance, NotFound
from nftmarket.models.user_models import User

log = logging.getLogger("nftmarket.wallet_utils")

MONEY = Decimal("0.0001")
Number = Union[Decimal, int, float, str]


def to_money(value: Optional[Number]) -> Decimal:
    """Normalize to the 4 decimal places the balance columns store."""
    if value is None:
        return Decimal("0").quantize(MONEY)
    return Decimal(str(value)).quantize(MONEY, rounding=ROUND_HALF_UP)


def lock_user(db: Session, wallet: str) -> Optional[User]:
    """Load a user row with ``FOR UPDATE`` (a no-op on SQLite)."""
    return db.execute(
        select(User).where(User.wallet_address == wallet).with_for_update()
    ).scalar_one_or_none()


def debit(db: Session, wallet: str, amount: Number) -> User:
    amount = to_money(amount)
    user = lock_user(db, wallet)
    if user is None:
        raise NotFound("No such user")
    if to_money(user.balance) < amount:
        raise InsufficientBalance()
    user.balance = to_money(user.balance) - amount
    log.debug("debit %s by %s", wallet, amount)
    return user


def credit(db: Session, wallet: str, amount: Number) -> Optional[User]:
    """Credit ``wallet``. Returns None when no such account exists."""
    amount = to_money(amount)
    user = lock_user(db, wallet)
    if user is None:
        return None
    user.balance = to_money(user.balance) + amount
    log.debug("credit %s by %s", wallet, amount)
    return user
