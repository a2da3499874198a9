# nftmarket/services/storage_service.py
"""
External file storage.

- Pinata: images and metadata JSON pinned to IPFS (collections, NFTs)
- Cloudinary: user avatars, via the signed upload REST API

Both are called with ``requests``; any transport or HTTP failure surfaces
as ``UpstreamError`` (502).
"""
import hashlib
import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests

from nftmarket import config
from nftmarket.errors import UpstreamError

log = logging.getLogger("nftmarket.storage")

TIMEOUT = 30


# -------------------------
# IPFS (Pinata)
# -------------------------
def _pinata_headers() -> Dict[str, str]:
    if not config.PINATA_JWT:
        raise UpstreamError("IPFS pinning is not configured")
    return {"Authorization": f"Bearer {config.PINATA_JWT}"}


def _pinata_hash(resp: requests.Response, what: str) -> str:
    if resp.status_code != 200:
        log.warning("Pinata returned %s for %s: %s", resp.status_code, what, (resp.text or "")[:200])
        raise UpstreamError(f"Failed to upload {what}")
    return resp.json()["IpfsHash"]


def pin_file(filename: str, content: bytes, content_type: Optional[str] = None) -> str:
    """Pin raw bytes and return the IPFS hash."""
    url = f"{config.PINATA_API_URL.rstrip('/')}/pinning/pinFileToIPFS"
    try:
        resp = requests.post(
            url,
            headers=_pinata_headers(),
            files={"file": (filename or "upload", content, content_type or "application/octet-stream")},
            timeout=TIMEOUT,
        )
    except requests.RequestException as e:
        log.exception("pin_file failed")
        raise UpstreamError("Failed to upload image") from e
    return _pinata_hash(resp, "image")


def pin_json(metadata: Dict[str, Any]) -> str:
    url = f"{config.PINATA_API_URL.rstrip('/')}/pinning/pinJSONToIPFS"
    try:
        resp = requests.post(url, headers=_pinata_headers(), json={"pinataContent": metadata}, timeout=TIMEOUT)
    except requests.RequestException as e:
        log.exception("pin_json failed")
        raise UpstreamError("Failed to upload metadata") from e
    return _pinata_hash(resp, "metadata")


def ipfs_image_url(ipfs_hash: str) -> str:
    return f"https://ipfs.io/ipfs/{ipfs_hash}"


def gateway_url(ipfs_hash: str) -> str:
    return f"{config.PINATA_GATEWAY.rstrip('/')}/ipfs/{ipfs_hash}"


# -------------------------
# Image host (Cloudinary)
# -------------------------
def cloudinary_signature(params: Dict[str, Any], secret: str) -> str:
    """sha1 over the alphabetically sorted ``k=v`` pairs followed by the secret."""
    payload = "&".join(f"{k}={params[k]}" for k in sorted(params))
    return hashlib.sha1((payload + secret).encode("utf-8")).hexdigest()


def _cloudinary_url(action: str) -> str:
    if not (config.CLOUDINARY_CLOUD_NAME and config.CLOUDINARY_API_KEY and config.CLOUDINARY_API_SECRET):
        raise UpstreamError("Image hosting is not configured")
    return f"https://api.cloudinary.com/v1_1/{config.CLOUDINARY_CLOUD_NAME}/image/{action}"


def upload_image(filename: str, content: bytes, content_type: Optional[str] = None) -> str:
    """Upload an avatar and return its delivery URL."""
    url = _cloudinary_url("upload")
    params = {"timestamp": int(time.time())}
    data = dict(params, api_key=config.CLOUDINARY_API_KEY,
                signature=cloudinary_signature(params, config.CLOUDINARY_API_SECRET))
    try:
        resp = requests.post(
            url,
            data=data,
            files={"file": (filename or "avatar", content, content_type or "application/octet-stream")},
            timeout=TIMEOUT,
        )
    except requests.RequestException as e:
        log.exception("upload_image failed")
        raise UpstreamError("Failed to upload image") from e
    if resp.status_code != 200:
        log.warning("Cloudinary upload returned %s: %s", resp.status_code, (resp.text or "")[:200])
        raise UpstreamError("Failed to upload image")
    body = resp.json()
    return body.get("secure_url") or body["url"]


def public_id_from_url(image_url: str) -> Optional[str]:
    """``.../image/upload/v123/abc.png`` -> ``abc``"""
    path = urlparse(image_url).path
    if "/upload/" not in path:
        return None
    tail = path.split("/upload/", 1)[1].split("/")
    if tail and tail[0].startswith("v") and tail[0][1:].isdigit():
        tail = tail[1:]
    if not tail:
        return None
    return "/".join(tail).rsplit(".", 1)[0]


def delete_image(image_url: str) -> None:
    """Remove a previously uploaded avatar. Foreign URLs are ignored."""
    public_id = public_id_from_url(image_url or "")
    if not public_id or not config.CLOUDINARY_CLOUD_NAME or config.CLOUDINARY_CLOUD_NAME not in image_url:
        return
    url = _cloudinary_url("destroy")
    params = {"public_id": public_id, "timestamp": int(time.time())}
    data = dict(params, api_key=config.CLOUDINARY_API_KEY,
                signature=cloudinary_signature(params, config.CLOUDINARY_API_SECRET))
    try:
        resp = requests.post(url, data=data, timeout=TIMEOUT)
    except requests.RequestException as e:
        log.exception("delete_image failed")
        raise UpstreamError("Failed to delete image") from e
    if resp.status_code != 200:
        log.warning("Cloudinary destroy returned %s for %s", resp.status_code, public_id)
