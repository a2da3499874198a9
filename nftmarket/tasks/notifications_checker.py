# nftmarket/tasks/notifications_checker.py
import logging

from nftmarket import config, crud
from nftmarket.db import SessionLocal
from nftmarket.models import EmailNotificationStatus
from nftmarket.services import mail_service
from nftmarket.services.notifications_service import pending_email

logger = logging.getLogger("nftmarket.tasks.notifications")


def send_pending_emails(session_factory=SessionLocal, batch_size: int = 100) -> dict:
    """
    Email every notification still PENDING. A failed delivery is retried on
    the next run and marked FAILED once EMAIL_MAX_ATTEMPTS is reached.
    """
    db = session_factory()
    sent = failed = retry = 0
    try:
        for n in pending_email(db, limit=batch_size):
            user = crud.get_user(db, n.user_wallet)
            if user is None or not user.email:
                n.mark_email(EmailNotificationStatus.FAILED)
                db.commit()
                failed += 1
                continue

            n.email_attempts = (n.email_attempts or 0) + 1
            try:
                mail_service.send_mail(user.email, user.nickname, n.title, n.message)
            except Exception as e:
                logger.warning("Email %s to %s failed (attempt %d): %s", n.id, user.email, n.email_attempts, e)
                if n.email_attempts >= config.EMAIL_MAX_ATTEMPTS:
                    n.mark_email(EmailNotificationStatus.FAILED)
                    failed += 1
                else:
                    retry += 1
            else:
                n.mark_email(EmailNotificationStatus.SENT)
                sent += 1
            db.commit()

        if sent or failed or retry:
            logger.info("Notification emails: %d sent, %d failed, %d to retry", sent, failed, retry)
        return {"sent": sent, "failed": failed, "retry": retry}
    except Exception:
        db.rollback()
        logger.exception("send_pending_emails failed")
        raise
    finally:
        db.close()
