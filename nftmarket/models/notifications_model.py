from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, ForeignKey

from nftmarket.db import Base, utcnow
from nftmarket.models.states import (
    NotificationType, WebNotificationStatus, EmailNotificationStatus, advance
)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_wallet = Column(String(42), ForeignKey("users.wallet_address"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(Enum(NotificationType, native_enum=False, length=32), nullable=False)
    web_status = Column(Enum(WebNotificationStatus, native_enum=False, length=16), nullable=False, default=WebNotificationStatus.UNREAD)
    email_status = Column(Enum(EmailNotificationStatus, native_enum=False, length=16), nullable=False, default=EmailNotificationStatus.PENDING, index=True)
    email_attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def mark_read(self) -> None:
        self.web_status = advance("WebNotification", self.web_status, WebNotificationStatus.READ)

    def mark_email(self, target: EmailNotificationStatus) -> None:
        self.email_status = advance("EmailNotification", self.email_status, target)
