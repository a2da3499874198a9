from sqlalchemy import Column, Integer, String, Text, DateTime, Numeric, Enum, ForeignKey
from sqlalchemy.orm import relationship

from nftmarket.db import Base, utcnow
from nftmarket.models.states import Blockchain


class Collection(Base):
    __tablename__ = "collections"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False, index=True)
    symbol = Column(String(10), nullable=False)
    contract_address = Column(String(42), nullable=False)
    blockchain = Column(Enum(Blockchain, native_enum=False, length=16), nullable=False, default=Blockchain.ETHEREUM)
    image = Column(String(1024), nullable=True)
    metadata_uri = Column(String(1024), nullable=True)
    royalties = Column(Numeric(5, 2), nullable=False, default=0)  # percent of each sale
    creator_wallet = Column(String(42), ForeignKey("users.wallet_address"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    nfts = relationship("NFT", back_populates="collection")


class NFT(Base):
    __tablename__ = "nfts"

    id = Column(Integer, primary_key=True, index=True)
    token_id = Column(String(128), nullable=True)
    name = Column(String(50), nullable=False, index=True)
    description = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(18, 4), nullable=False, default=0)
    image = Column(String(1024), nullable=True)
    metadata_uri = Column(String(1024), nullable=True)
    collection_id = Column(Integer, ForeignKey("collections.id"), nullable=False, index=True)
    owner_wallet = Column(String(42), ForeignKey("users.wallet_address"), nullable=False, index=True)
    creator_wallet = Column(String(42), ForeignKey("users.wallet_address"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    collection = relationship("Collection", back_populates="nfts")
    traits = relationship("NFTTrait", back_populates="nft", cascade="all, delete-orphan")


class NFTTrait(Base):
    __tablename__ = "nft_traits"

    id = Column(Integer, primary_key=True, index=True)
    nft_id = Column(Integer, ForeignKey("nfts.id", ondelete="CASCADE"), nullable=False, index=True)
    trait_type = Column(String(64), nullable=False)
    value = Column(String(255), nullable=False)

    nft = relationship("NFT", back_populates="traits")


__all__ = ["Collection", "NFT", "NFTTrait"]
