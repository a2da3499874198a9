# nftmarket/tasks/drops_checker.py
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select

from nftmarket import crud
from nftmarket.db import SessionLocal, utcnow
from nftmarket.errors import BusinessRuleError
from nftmarket.models import NFTListing, ListingStatus, NotificationType
from nftmarket.services.notifications_service import notify

logger = logging.getLogger("nftmarket.tasks.drops")


def activate_due_listings(session_factory=SessionLocal, now: Optional[datetime] = None) -> dict:
    """Move SCHEDULED listings whose drop time has passed to ACTIVE and tell the seller."""
    now = now or utcnow()
    db = session_factory()
    dropped = []
    try:
        due = db.execute(
            select(NFTListing)
            .where(NFTListing.status == ListingStatus.SCHEDULED, NFTListing.drop_at <= now)
            .order_by(NFTListing.drop_at.asc())
        ).scalars().all()
        if not due:
            logger.debug("No NFTs to drop")
            return {"dropped": []}

        logger.info("Processing %d NFT drops", len(due))
        for listing in due:
            try:
                crud.claim_status(db, "Listing", listing, ListingStatus.ACTIVE)
            except BusinessRuleError:
                # another worker activated it first
                db.rollback()
                continue
            if listing.nft is not None:
                notify(db, listing.seller_wallet, "Drop",
                       f"Your NFT {listing.nft.name} has dropped!", NotificationType.DROP)
            db.commit()
            dropped.append(listing.id)
            logger.info("Listing %s is now ACTIVE", listing.id)
        return {"dropped": dropped}
    except Exception:
        db.rollback()
        logger.exception("activate_due_listings failed")
        raise
    finally:
        db.close()
