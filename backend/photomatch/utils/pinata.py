"""Pinata IPFS pinning client.

Pins a file with ``pinFileToIPFS`` (CID v1, group id recorded in the pin's
keyvalues) and unpins it by CID. Files are served from the dedicated
gateway at ``https://{gateway}/ipfs/{cid}``.
"""

from __future__ import annotations

import json

import httpx
import structlog

from photomatch.config import settings
from photomatch.models.contracts import TemporaryAsset

logger = structlog.get_logger()

PIN_TIMEOUT = 60.0
UNPIN_TIMEOUT = 15.0


class PinataError(Exception):
    """Raised when the Pinata API rejects a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def gateway_url(cid: str, gateway: str | None = None) -> str:
    """Build the public gateway URL for a CID."""
    host = (gateway if gateway is not None else settings.pinata_gateway_url).strip()
    host = host.removeprefix("https://").removeprefix("http://").rstrip("/")
    if not host:
        logger.warning("pinata_gateway_not_configured")
    return f"https://{host}/ipfs/{cid}"


def _clean_cid(cid: str) -> str:
    """Strip whitespace and any query string from a CID."""
    return cid.strip().split("?")[0]


class PinataStorage:
    """ObjectStorage backed by Pinata."""

    name = "pinata"

    def __init__(
        self,
        jwt: str | None = None,
        *,
        api_url: str | None = None,
        gateway: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._jwt = jwt if jwt is not None else settings.pinata_jwt
        self._api_url = (api_url or settings.pinata_api_url).rstrip("/")
        self._gateway = gateway
        self._http_client = http_client

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._jwt}"}

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self._api_url}{path}"
        if self._http_client is not None:
            return await self._http_client.request(method, url, headers=self._headers(), **kwargs)
        async with httpx.AsyncClient() as client:
            return await client.request(method, url, headers=self._headers(), **kwargs)

    async def upload(
        self,
        data: bytes,
        group_hint: str,
        *,
        filename: str = "",
        content_type: str = "image/jpeg",
    ) -> TemporaryAsset:
        name = filename or "upload"
        metadata = {"name": name, "keyvalues": {"groupId": group_hint}}
        resp = await self._request(
            "POST",
            "/pinning/pinFileToIPFS",
            files={"file": (name, data, content_type)},
            data={
                "pinataMetadata": json.dumps(metadata),
                "pinataOptions": json.dumps({"cidVersion": 1}),
            },
            timeout=PIN_TIMEOUT,
        )
        if resp.status_code != 200:
            logger.error(
                "pinata_pin_failed",
                status=resp.status_code,
                body=resp.text[:200],
            )
            raise PinataError(f"Pinata pin failed: HTTP {resp.status_code}", resp.status_code)

        cid = resp.json().get("IpfsHash")
        if not cid:
            raise PinataError("Pinata response did not include IpfsHash")
        logger.info("pinata_pin", cid=cid, size=len(data), group=group_hint)
        return TemporaryAsset(cid=cid, url=gateway_url(cid, self._gateway))

    async def delete(self, cid: str) -> None:
        cleaned = _clean_cid(cid)
        if not cleaned:
            raise PinataError("Cannot unpin an empty CID")
        resp = await self._request("DELETE", f"/pinning/unpin/{cleaned}", timeout=UNPIN_TIMEOUT)
        if resp.status_code >= 400:
            logger.warning(
                "pinata_unpin_failed",
                cid=cleaned,
                status=resp.status_code,
                body=resp.text[:200],
            )
            raise PinataError(f"Pinata unpin failed: HTTP {resp.status_code}", resp.status_code)
        logger.info("pinata_unpin", cid=cleaned)

    async def check(self) -> None:
        resp = await self._request("GET", "/data/testAuthentication", timeout=UNPIN_TIMEOUT)
        if resp.status_code != 200:
            raise PinataError(f"Pinata auth check failed: HTTP {resp.status_code}", resp.status_code)
