# nftmarket/services/friends_service.py
import logging
from typing import Any, Dict

from sqlalchemy import select, or_, and_
from sqlalchemy.orm import Session

from nftmarket import crud
from nftmarket.errors import BusinessRuleError, Forbidden, NotFound, ValidationFailed
from nftmarket.models import User, FriendRequest, Friendship, RequestStatus
from nftmarket.services.user_service import user_to_dict

log = logging.getLogger("nftmarket.friends")


def request_to_dict(r: FriendRequest) -> Dict[str, Any]:
    return {
        "id": r.id,
        "senderWallet": r.sender_wallet,
        "receiverWallet": r.receiver_wallet,
        "status": r.status.value,
        "createdAt": r.created_at,
    }


class FriendsService:
    def __init__(self, db: Session, user: User):
        self.db = db
        self.user = user

    @property
    def wallet(self) -> str:
        return self.user.wallet_address

    def send_request(self, receiver_wallet: str) -> Dict[str, Any]:
        if receiver_wallet == self.wallet:
            raise BusinessRuleError("You can't befriend yourself")
        crud.require_user(self.db, receiver_wallet, "No such receiver")
        if crud.friendship_between(self.db, self.wallet, receiver_wallet) is not None:
            raise BusinessRuleError("You are already friends")

        pending = self.db.execute(
            select(FriendRequest).where(
                FriendRequest.status == RequestStatus.PENDING,
                or_(
                    and_(FriendRequest.sender_wallet == self.wallet, FriendRequest.receiver_wallet == receiver_wallet),
                    and_(FriendRequest.sender_wallet == receiver_wallet, FriendRequest.receiver_wallet == self.wallet),
                ),
            )
        ).scalars().first()
        if pending is not None:
            raise BusinessRuleError("A friend request is already pending")

        r = FriendRequest(sender_wallet=self.wallet, receiver_wallet=receiver_wallet)
        self.db.add(r)
        self.db.commit()
        log.info("Friend request %s -> %s", self.wallet, receiver_wallet)
        return request_to_dict(r)

    def list_requests(self, direction: str = "received", page: int = 1, limit: int = 10) -> Dict[str, Any]:
        if direction not in ("sent", "received"):
            raise ValidationFailed("Type must be 'sent' or 'received'")
        column = FriendRequest.sender_wallet if direction == "sent" else FriendRequest.receiver_wallet
        rows = self.db.execute(
            select(FriendRequest)
            .where(column == self.wallet, FriendRequest.status == RequestStatus.PENDING)
            .order_by(FriendRequest.created_at.desc())
        ).scalars().all()
        return crud.paginate([request_to_dict(r) for r in rows], page, limit, "requests")

    def respond(self, request_id: int, accepted: bool) -> Dict[str, Any]:
        r = self.db.get(FriendRequest, request_id)
        if r is None:
            raise NotFound("No such friend request")
        if r.receiver_wallet != self.wallet:
            raise Forbidden("Only the receiver can respond to a friend request")
        try:
            crud.claim_status(self.db, "FriendRequest", r,
                              RequestStatus.ACCEPTED if accepted else RequestStatus.REJECTED)
            if accepted and crud.friendship_between(self.db, r.sender_wallet, r.receiver_wallet) is None:
                self.db.add(Friendship(user1_wallet=r.sender_wallet, user2_wallet=r.receiver_wallet))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return request_to_dict(r)

    def list_friends(self, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        rows = self.db.execute(
            select(Friendship)
            .where(or_(Friendship.user1_wallet == self.wallet, Friendship.user2_wallet == self.wallet))
            .order_by(Friendship.created_at.desc())
        ).scalars().all()
        friends = []
        for f in rows:
            other = crud.get_user(self.db, f.other(self.wallet))
            if other is not None:
                friends.append(user_to_dict(other))
        return crud.paginate(friends, page, limit, "friends")

    def remove_friend(self, friend_wallet: str) -> Dict[str, Any]:
        f = crud.friendship_between(self.db, self.wallet, friend_wallet)
        if f is None:
            raise NotFound("No such friendship")
        self.db.delete(f)
        self.db.commit()
        return {"message": "Friend removed"}
