# nftmarket/api/notifications_routes.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from nftmarket.db import get_db
from nftmarket.deps import get_current_user
from nftmarket.schemas import NotificationRead
from nftmarket.services.notifications_service import NotificationsService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    svc = NotificationsService(db, user)
    return svc.list_notifications(page, limit)


@router.put("")
def mark_read(payload: NotificationRead, db: Session = Depends(get_db), user=Depends(get_current_user)):
    svc = NotificationsService(db, user)
    return svc.mark_read(payload.id)
