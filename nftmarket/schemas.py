# nftmarket/schemas.py

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

WALLET_PATTERN = r"^0x[a-fA-F0-9]{40}$"


class CamelModel(BaseModel):
    """Request bodies arrive camelCased; attributes stay snake_case."""
    model_config = ConfigDict(populate_by_name=True)


# =====================================================
# AUTH
# =====================================================

class SigninPayload(CamelModel):
    address: str = Field(..., pattern=WALLET_PATTERN)
    signature: str = Field(..., min_length=4)


class LoginPayload(CamelModel):
    wallet_address: str = Field(..., alias="walletAddress", pattern=WALLET_PATTERN)
    password: str


class RefreshPayload(CamelModel):
    refresh_token: Optional[str] = Field(None, alias="refreshToken")


class TokenPair(CamelModel):
    access_token: str = Field(..., alias="accessToken")
    refresh_token: str = Field(..., alias="refreshToken")
    token_type: str = Field("bearer", alias="tokenType")


# =====================================================
# USERS / FRIENDS
# =====================================================

class UserCreate(CamelModel):
    wallet_address: str = Field(..., alias="walletAddress", pattern=WALLET_PATTERN)
    email: EmailStr
    nickname: str = Field(..., min_length=3, max_length=20)
    password: Optional[str] = Field(None, min_length=6, max_length=72)


class UserUpdate(CamelModel):
    email: Optional[EmailStr] = None
    nickname: Optional[str] = Field(None, min_length=3, max_length=20)


class PreferencesUpdate(CamelModel):
    item_sold_notification: Optional[bool] = Field(None, alias="itemSoldNotification")
    offer_activity_notification: Optional[bool] = Field(None, alias="offerActivityNotification")
    best_offer_activity_notification: Optional[bool] = Field(None, alias="bestOfferActivityNotification")
    successful_transfer_notification: Optional[bool] = Field(None, alias="successfulTransferNotification")
    transfer_notification: Optional[bool] = Field(None, alias="transferNotification")
    outbid_notification: Optional[bool] = Field(None, alias="outbidNotification")
    successful_purchase_notification: Optional[bool] = Field(None, alias="successfulPurchaseNotification")
    successful_mint_notification: Optional[bool] = Field(None, alias="successfulMintNotification")


class BalanceCredit(CamelModel):
    amount: Decimal = Field(..., gt=0)


class FriendRequestCreate(CamelModel):
    receiver_wallet: str = Field(..., alias="receiverWallet", pattern=WALLET_PATTERN)


class FriendRequestRespond(CamelModel):
    id: int
    accepted: bool


# =====================================================
# NFTS
# =====================================================

class TraitIn(CamelModel):
    trait_type: str = Field(..., alias="traitType", min_length=1, max_length=64)
    value: str = Field(..., min_length=1, max_length=255)


class TokenIdUpdate(CamelModel):
    nft_id: int = Field(..., alias="nftId")
    token_id: str = Field(..., alias="tokenId", min_length=1, max_length=128)


# =====================================================
# MARKET
# =====================================================

class ListingCreate(CamelModel):
    nft_id: int = Field(..., alias="nftId")
    price: Decimal = Field(..., gt=0)
    contract_address: str = Field(..., alias="contractAddress", pattern=WALLET_PATTERN)
    drop_at: Optional[datetime] = Field(None, alias="dropAt")


class ListingBuy(CamelModel):
    listing_id: int = Field(..., alias="listingId")


class BidCreate(CamelModel):
    listing_id: int = Field(..., alias="listingId")
    price: Decimal = Field(..., gt=0)


class BidRespond(CamelModel):
    id: int
    accepted: bool


class TradeCreate(CamelModel):
    taker_wallet: str = Field(..., alias="takerWallet", pattern=WALLET_PATTERN)
    offered_nft_ids: List[int] = Field(default_factory=list, alias="offeredNFTIds")
    requested_nft_ids: List[int] = Field(default_factory=list, alias="requestedNFTIds")


class TradeRespond(CamelModel):
    trade_id: int = Field(..., alias="tradeId")
    accepted: bool


# =====================================================
# NOTIFICATIONS
# =====================================================

class NotificationRead(CamelModel):
    id: int
