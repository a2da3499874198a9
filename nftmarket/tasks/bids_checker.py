# nftmarket/tasks/bids_checker.py
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update

from nftmarket import config
from nftmarket.db import SessionLocal, utcnow
from nftmarket.models import Bid, BidStatus

logger = logging.getLogger("nftmarket.tasks.bids")


def reject_expired_bids(session_factory=SessionLocal, now: Optional[datetime] = None) -> dict:
    """Reject bids that have been ACTIVE for longer than BID_EXPIRY_DAYS."""
    now = now or utcnow()
    cutoff = now - timedelta(days=config.BID_EXPIRY_DAYS)
    db = session_factory()
    try:
        result = db.execute(
            update(Bid)
            .where(Bid.status == BidStatus.ACTIVE, Bid.created_at < cutoff)
            .values(status=BidStatus.REJECTED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount:
            logger.info("Rejected %d expired bids", result.rowcount)
        else:
            logger.debug("No expired bids")
        return {"rejected": result.rowcount}
    except Exception:
        db.rollback()
        logger.exception("reject_expired_bids failed")
        raise
    finally:
        db.close()
