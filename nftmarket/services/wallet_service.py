# nftmarket/services/wallet_service.py
"""
Balances and sale settlement.

``settle_sale`` performs every mutation of a completed sale inside the
caller's session transaction: listing ACTIVE -> SOLD (guarded), competing
bids rejected, buyer debited, seller and collection creator credited, NFT
ownership moved and the Transaction row written. The caller commits once,
or rolls back and nothing happened.
"""
import logging
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from nftmarket import config, crud
from nftmarket.errors import BusinessRuleError, ValidationFailed
from nftmarket.models import (
    User, NFTListing, Bid, Transaction, BidStatus, ListingStatus, TransactionStatus,
)
from nftmarket.models.wallet_utils import to_money, debit, credit

log = logging.getLogger("nftmarket.wallet")


def split_royalty(price, royalties_percent) -> Tuple[Decimal, Decimal]:
    """Return ``(seller_amount, royalty)``; the two always sum to ``price``."""
    price = to_money(price)
    royalty = to_money(price * Decimal(str(royalties_percent or 0)) / Decimal(100))
    return price - royalty, royalty


class WalletService:
    def __init__(self, db: Session, user: Optional[User] = None):
        self.db = db
        self.user = user

    def get_balance(self, wallet: Optional[str] = None) -> dict:
        wallet = wallet or self.user.wallet_address
        u = crud.require_user(self.db, wallet)
        return {"walletAddress": wallet, "balance": float(to_money(u.balance))}

    def credit_balance(self, wallet: str, amount) -> dict:
        """Admin top-up."""
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationFailed("Amount must be positive")
        crud.require_user(self.db, wallet)
        try:
            u = credit(self.db, wallet, amount)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        log.info("Credited %s to %s", amount, wallet)
        return {"walletAddress": wallet, "balance": float(to_money(u.balance))}

    def settle_sale(self, listing: NFTListing, buyer_wallet: str, price,
                    accepted_bid: Optional[Bid] = None) -> Transaction:
        db = self.db
        price = to_money(price)
        nft = listing.nft
        collection = nft.collection

        crud.claim_status(db, "Listing", listing, ListingStatus.SOLD)

        stale = update(Bid).where(Bid.listing_id == listing.id, Bid.status == BidStatus.ACTIVE)
        if accepted_bid is not None:
            stale = stale.where(Bid.id != accepted_bid.id)
        db.execute(stale.values(status=BidStatus.REJECTED).execution_options(synchronize_session="fetch"))

        seller_amount, royalty = split_royalty(price, collection.royalties)

        debit(db, buyer_wallet, price)
        if royalty > 0 and credit(db, collection.creator_wallet, royalty) is None:
            # creator has no account; keep the funds with the seller
            log.warning("Collection creator %s has no account; royalty stays with seller",
                        collection.creator_wallet)
            seller_amount, royalty = price, Decimal("0")
        if credit(db, listing.seller_wallet, seller_amount) is None:
            raise BusinessRuleError("No such seller")

        nft.owner_wallet = buyer_wallet

        txn = Transaction(
            listing_id=listing.id,
            buyer_wallet=buyer_wallet,
            seller_wallet=listing.seller_wallet,
            price=price,
            royalty_amount=royalty,
            network=config.DEFAULT_NETWORK,
            status=TransactionStatus.COMPLETED,
        )
        db.add(txn)
        db.flush()
        log.info("Settled listing %s: buyer=%s seller=%s price=%s royalty=%s",
                 listing.id, buyer_wallet, listing.seller_wallet, price, royalty)
        return txn
