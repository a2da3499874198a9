import logging
import time

import uvicorn

from nftmarket import config

# =====================================================
# LOGGING
# =====================================================
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger("nftmarket.main")

# =====================================================
# FASTAPI CORE
# =====================================================
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nftmarket.api import router as api_router, auto_register_routes
from nftmarket.db import init_db, close_db
from nftmarket.errors import MarketplaceError
from nftmarket.scheduler import start_scheduler, stop_scheduler, get_scheduler_status

# =====================================================
# CREATE APP
# =====================================================
app = FastAPI(
    title="NFT Marketplace Backend",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# =====================================================
# MIDDLEWARE
# =====================================================
allowed_origins = [
    config.FRONTEND_URL,
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
]

if config.CORS_ALLOW_ALL:
    allowed_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =====================================================
# ERRORS
# =====================================================
@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    log.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# =====================================================
# ROUTES
# =====================================================
auto_register_routes()
app.include_router(api_router, prefix="/api")


# =====================================================
# HEALTH
# =====================================================
@app.get("/health")
def health():
    return {"ok": True, "time": int(time.time()), "scheduler": get_scheduler_status()}


# =====================================================
# STARTUP / SHUTDOWN
# =====================================================
@app.on_event("startup")
async def startup():
    init_db()
    if config.SCHEDULER_ENABLED:
        start_scheduler()
    log.info("NFT Marketplace Backend started")


@app.on_event("shutdown")
async def shutdown():
    stop_scheduler()
    close_db()
    log.info("NFT Marketplace Backend stopped")


# =====================================================
# ENTRYPOINT
# =====================================================
if __name__ == "__main__":
    uvicorn.run(
        "nftmarket.main:app",
        host="0.0.0.0",
        port=config.PORT,
        reload=True,
    )
