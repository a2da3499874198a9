# nftmarket/api/__init__.py
from fastapi import APIRouter
import pkgutil
import importlib
import logging

log = logging.getLogger("nftmarket.api")

router = APIRouter()


def auto_register_routes():
    """
    Discover and mount all *_routes.py files inside nftmarket/api
    """
    log.info("Auto-discovering API routes...")

    for _, module_name, _ in sorted(pkgutil.iter_modules(__path__)):
        if not module_name.endswith("_routes"):
            continue

        module = importlib.import_module(f"{__name__}.{module_name}")
        if hasattr(module, "router"):
            router.include_router(module.router)
            log.info("Loaded API router: %s", module_name)
        else:
            log.warning("%s has no router", module_name)
