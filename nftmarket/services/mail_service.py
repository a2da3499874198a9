# nftmarket/services/mail_service.py
import html
import logging
import smtplib
import ssl
from email.message import EmailMessage

from nftmarket import config

log = logging.getLogger("nftmarket.mail")


def render_body(nickname: str, message: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">'
        f'<h1 style="color: #4CAF50;">Hello, {html.escape(nickname)}!</h1>'
        f"<p>{html.escape(message)}</p>"
        '<footer style="margin-top: 20px; font-size: 12px; color: #777;">'
        f"Best regards,<br>{html.escape(config.SMTP_FROM_NAME or 'The team')}"
        "</footer></div>"
    )


def send_mail(to_email: str, nickname: str, subject: str, text: str) -> None:
    """
    Send one notification email. Raises on any SMTP failure so the caller
    can record the attempt.
    """
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = config.SMTP_FROM
    msg["To"] = to_email
    msg.set_content(f"Hello, {nickname}!\n\n{text}\n")
    msg.add_alternative(render_body(nickname, text), subtype="html")

    # implicit SSL on 465, STARTTLS otherwise
    if config.SMTP_PORT == 465:
        context = ssl.create_default_context()
        with smtplib.SMTP_SSL(config.SMTP_HOST, config.SMTP_PORT, context=context, timeout=15) as server:
            if config.SMTP_USER:
                server.login(config.SMTP_USER, config.SMTP_PASS)
            server.send_message(msg)
    else:
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=15) as server:
            server.ehlo()
            if config.SMTP_USE_TLS:
                server.starttls()
                server.ehlo()
            if config.SMTP_USER:
                server.login(config.SMTP_USER, config.SMTP_PASS)
            server.send_message(msg)

    log.info("Email '%s' sent to %s", subject, to_email)
