"""
Marketplace models: listings, bids, settlement records and barter trades.
"""

from sqlalchemy import Column, Integer, String, DateTime, Numeric, Enum, ForeignKey
from sqlalchemy.orm import relationship

from nftmarket.db import Base, utcnow
from nftmarket.models.states import (
    ListingStatus, BidStatus, TradeStatus, TradeSide, TransactionStatus
)


class NFTListing(Base):
    __tablename__ = "nft_listings"

    id = Column(Integer, primary_key=True, index=True)
    nft_id = Column(Integer, ForeignKey("nfts.id"), nullable=False, index=True)
    seller_wallet = Column(String(42), ForeignKey("users.wallet_address"), nullable=False, index=True)
    contract_address = Column(String(42), nullable=False)
    price = Column(Numeric(18, 4), nullable=False)
    status = Column(Enum(ListingStatus, native_enum=False, length=16), nullable=False, default=ListingStatus.ACTIVE, index=True)
    drop_at = Column(DateTime, nullable=False, default=utcnow)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    nft = relationship("NFT")
    bids = relationship("Bid", back_populates="listing")


class Bid(Base):
    __tablename__ = "bids"

    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column(Integer, ForeignKey("nft_listings.id"), nullable=False, index=True)
    bidder_wallet = Column(String(42), ForeignKey("users.wallet_address"), nullable=False, index=True)
    price = Column(Numeric(18, 4), nullable=False)
    status = Column(Enum(BidStatus, native_enum=False, length=16), nullable=False, default=BidStatus.ACTIVE, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    listing = relationship("NFTListing", back_populates="bids")


class Transaction(Base):
    """Settlement record written once per completed sale; never updated."""
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column(Integer, ForeignKey("nft_listings.id"), nullable=False, index=True)
    buyer_wallet = Column(String(42), ForeignKey("users.wallet_address"), nullable=False, index=True)
    seller_wallet = Column(String(42), ForeignKey("users.wallet_address"), nullable=False, index=True)
    price = Column(Numeric(18, 4), nullable=False)
    royalty_amount = Column(Numeric(18, 4), nullable=False, default=0)
    network = Column(String(32), nullable=False)
    status = Column(Enum(TransactionStatus, native_enum=False, length=16), nullable=False, default=TransactionStatus.COMPLETED)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    listing = relationship("NFTListing")


class Trade(Base):
    __tablename__ = "trades"

    id = Column(Integer, primary_key=True, index=True)
    offerer_wallet = Column(String(42), ForeignKey("users.wallet_address"), nullable=False, index=True)
    taker_wallet = Column(String(42), ForeignKey("users.wallet_address"), nullable=False, index=True)
    status = Column(Enum(TradeStatus, native_enum=False, length=16), nullable=False, default=TradeStatus.PENDING, index=True)
    offer_time = Column(DateTime, default=utcnow, nullable=False)
    exchange_time = Column(DateTime, nullable=True)

    items = relationship("TradeItem", back_populates="trade", cascade="all, delete-orphan")


class TradeItem(Base):
    __tablename__ = "trade_items"

    id = Column(Integer, primary_key=True, index=True)
    trade_id = Column(Integer, ForeignKey("trades.id", ondelete="CASCADE"), nullable=False, index=True)
    nft_id = Column(Integer, ForeignKey("nfts.id"), nullable=False, index=True)
    side = Column(Enum(TradeSide, native_enum=False, length=16), nullable=False)

    trade = relationship("Trade", back_populates="items")
    nft = relationship("NFT")


__all__ = ["NFTListing", "Bid", "Transaction", "Trade", "TradeItem"]
