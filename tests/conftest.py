"""Shared fixtures: an in-memory database, model factories and an API client."""

import os

os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from nftmarket import models
from nftmarket.db import Base, get_db
from nftmarket.main import app
from nftmarket.security import create_access_token

SELLER = "0x" + "a" * 40
BUYER = "0x" + "b" * 40
CREATOR = "0x" + "c" * 40
OTHER = "0x" + "d" * 40


@pytest.fixture
def engine():
    """Create a fresh in-memory database shared by every session of one test."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    """Return a sessionmaker bound to the test database."""
    return sessionmaker(bind=engine, autoflush=False, future=True, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    """Yield one session for direct service calls."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    """Return a TestClient whose requests use the test database."""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Factory creating a user with a balance."""
    def _make(wallet, balance=0, nickname=None, **fields):
        user = models.User(
            wallet_address=wallet,
            email=f"{wallet[-6:]}@example.com",
            nickname=nickname or f"user{wallet[-4:]}",
            balance=Decimal(str(balance)),
            **fields,
        )
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def make_collection(db):
    """Factory creating a collection owned by ``creator``."""
    def _make(creator, royalties=10, name="Bored Apes", symbol="BAPE", blockchain=models.Blockchain.ETHEREUM):
        c = models.Collection(
            name=name,
            symbol=symbol,
            contract_address="0x" + "1" * 40,
            blockchain=blockchain,
            royalties=Decimal(str(royalties)),
            creator_wallet=creator,
        )
        db.add(c)
        db.commit()
        return c
    return _make


@pytest.fixture
def make_nft(db):
    """Factory creating an NFT in ``collection`` held by ``owner``."""
    def _make(collection, owner, price=10, name="Ape #1"):
        n = models.NFT(
            name=name,
            price=Decimal(str(price)),
            collection_id=collection.id,
            owner_wallet=owner,
            creator_wallet=collection.creator_wallet,
        )
        db.add(n)
        db.commit()
        return n
    return _make


@pytest.fixture
def make_listing(db):
    """Factory creating a listing for ``nft`` by its current owner."""
    def _make(nft, price, status=models.ListingStatus.ACTIVE, drop_at=None):
        listing = models.NFTListing(
            nft_id=nft.id,
            seller_wallet=nft.owner_wallet,
            contract_address="0x" + "1" * 40,
            price=Decimal(str(price)),
            status=status,
        )
        if drop_at is not None:
            listing.drop_at = drop_at
        db.add(listing)
        db.commit()
        return listing
    return _make


@pytest.fixture
def auth_headers():
    """Build a bearer header for a wallet."""
    def _headers(wallet):
        return {"Authorization": f"Bearer {create_access_token(wallet)}"}
    return _headers
