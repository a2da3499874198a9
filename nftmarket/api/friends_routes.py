# nftmarket/api/friends_routes.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from nftmarket.db import get_db
from nftmarket.deps import get_current_user
from nftmarket.schemas import FriendRequestCreate, FriendRequestRespond
from nftmarket.services.friends_service import FriendsService

router = APIRouter(prefix="/friends", tags=["friends"])


@router.get("")
def list_friends(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    return FriendsService(db, user).list_friends(page, limit)


@router.post("/request")
def send_request(payload: FriendRequestCreate, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return FriendsService(db, user).send_request(payload.receiver_wallet)


@router.put("/request")
def respond(payload: FriendRequestRespond, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return FriendsService(db, user).respond(payload.id, payload.accepted)


@router.get("/requests")
def list_requests(
    type: str = Query("received"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    return FriendsService(db, user).list_requests(type, page, limit)


@router.delete("/{wallet}")
def remove_friend(wallet: str, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return FriendsService(db, user).remove_friend(wallet)
