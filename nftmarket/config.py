# config.py
import os
from dotenv import load_dotenv
load_dotenv()

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "super_secret_key_change_this")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
REFRESH_COOKIE_NAME = os.getenv("REFRESH_COOKIE_NAME", "nftmarket_refresh")
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "changeme_admin_key")

# HTTP
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
CORS_ALLOW_ALL = os.getenv("CORS_ALLOW_ALL", "false").lower() in ("1", "true", "yes")

# SMTP (outbound notification email)
SMTP_HOST = os.getenv("SMTP_HOST", os.getenv("MAIL_HOST", "smtp.gmail.com"))
SMTP_PORT = int(os.getenv("SMTP_PORT", os.getenv("MAIL_PORT", "587")))
SMTP_USER = os.getenv("SMTP_USER", os.getenv("MAIL_USERNAME"))
SMTP_PASS = os.getenv("SMTP_PASS", os.getenv("MAIL_PASSWORD"))
SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "tls").lower() in ("1", "true", "yes", "tls", "starttls")
SMTP_FROM_ADDRESS = os.getenv("SMTP_FROM_ADDRESS", SMTP_USER or "no-reply@example.com")
SMTP_FROM_NAME = os.getenv("SMTP_FROM_NAME", "NFT Market")
SMTP_FROM = f"{SMTP_FROM_NAME} <{SMTP_FROM_ADDRESS}>" if SMTP_FROM_NAME else SMTP_FROM_ADDRESS

# IPFS pinning gateway
PINATA_JWT = os.getenv("PINATA_JWT", "")
PINATA_API_URL = os.getenv("PINATA_API_URL", "https://api.pinata.cloud")
PINATA_GATEWAY = os.getenv("PINATA_GATEWAY", "https://gateway.pinata.cloud")

# Image hosting
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "")
DEFAULT_AVATAR_URL = os.getenv("DEFAULT_AVATAR_URL", "https://example.com/default-avatar.png")

# Market rules
BID_EXPIRY_DAYS = int(os.getenv("BID_EXPIRY_DAYS", "30"))
BID_EXPIRING_WINDOW_DAYS = int(os.getenv("BID_EXPIRING_WINDOW_DAYS", "3"))
DEFAULT_NETWORK = os.getenv("DEFAULT_NETWORK", "Ethereum")
MAX_ROYALTIES = int(os.getenv("MAX_ROYALTIES", "50"))

# Jobs
SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() in ("1", "true", "yes")
BIDS_CHECK_INTERVAL_MIN = int(os.getenv("BIDS_CHECK_INTERVAL_MIN", "60"))
DROPS_CHECK_INTERVAL_SEC = int(os.getenv("DROPS_CHECK_INTERVAL_SEC", "60"))
EMAIL_CHECK_INTERVAL_SEC = int(os.getenv("EMAIL_CHECK_INTERVAL_SEC", "60"))
EMAIL_MAX_ATTEMPTS = int(os.getenv("EMAIL_MAX_ATTEMPTS", "3"))

# Server
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "8000"))
