# nftmarket/services/notifications_service.py
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from nftmarket import crud
from nftmarket.errors import Forbidden, NotFound
from nftmarket.models import Notification, NotificationType, User, EmailNotificationStatus

log = logging.getLogger("nftmarket.notifications")

# user preference column gating each notification type; None = always delivered
PREFERENCE_FOR_TYPE: Dict[NotificationType, Optional[str]] = {
    NotificationType.MINT: "successful_mint_notification",
    NotificationType.PURCHASE: "successful_purchase_notification",
    NotificationType.ITEM_SOLD: "item_sold_notification",
    NotificationType.OUTBID: "outbid_notification",
    NotificationType.BESTOFFER: "best_offer_activity_notification",
    NotificationType.OFFER: "offer_activity_notification",
    NotificationType.TRANSFER: "transfer_notification",
    NotificationType.SUCCESSTRANSFER: "successful_transfer_notification",
    NotificationType.DROP: None,
}


def wants(user: User, type_: NotificationType) -> bool:
    pref = PREFERENCE_FOR_TYPE.get(type_)
    return pref is None or bool(getattr(user, pref, True))


def notify(db: Session, wallet: str, title: str, message: str,
           type_: NotificationType) -> Optional[Notification]:
    """
    Queue a notification for ``wallet`` if their preferences allow it.
    Adds to the session without committing.
    """
    user = crud.get_user(db, wallet)
    if user is None:
        log.warning("notify: no user %s for %s", wallet, type_.value)
        return None
    if not wants(user, type_):
        return None
    n = Notification(user_wallet=wallet, title=title, message=message, type=type_)
    db.add(n)
    return n


def notification_to_dict(n: Notification) -> Dict[str, Any]:
    return {
        "id": n.id,
        "userWallet": n.user_wallet,
        "title": n.title,
        "message": n.message,
        "type": n.type.value,
        "webStatus": n.web_status.value,
        "emailStatus": n.email_status.value,
        "createdAt": n.created_at,
    }


def pending_email(db: Session, limit: int = 100) -> List[Notification]:
    return list(db.execute(
        select(Notification)
        .where(Notification.email_status == EmailNotificationStatus.PENDING)
        .order_by(Notification.created_at.asc())
        .limit(limit)
    ).scalars())


class NotificationsService:
    def __init__(self, db: Session, user: User):
        self.db = db
        self.user = user

    def list_notifications(self, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        rows = self.db.execute(
            select(Notification)
            .where(Notification.user_wallet == self.user.wallet_address)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
        ).scalars().all()
        return crud.paginate([notification_to_dict(n) for n in rows], page, limit, "notifications")

    def mark_read(self, notification_id: int) -> Dict[str, Any]:
        n = self.db.get(Notification, notification_id)
        if n is None:
            raise NotFound("No such notification")
        if n.user_wallet != self.user.wallet_address:
            raise Forbidden("Not your notification")
        n.mark_read()
        self.db.commit()
        return notification_to_dict(n)
