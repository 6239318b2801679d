"""
Record store backed by the Zotero Web API (v3)
"""
import httpx
from typing import List, Dict, Any, Optional, Callable
from loguru import logger

from ..config import settings
from ..models.schemas import Record
from .errors import NotFoundError, VersionConflictError, NetworkError, RateLimitedError, redact_secrets

PAGE_SIZE = 100


class ZoteroRecordStore:
    """Read and write records of one Zotero library with optimistic concurrency"""

    def __init__(self, api_key: Optional[str] = None, library_id: Optional[str] = None,
                 library_type: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key or settings.zotero_api_key
        self.library_id = library_id or settings.zotero_library_id
        self.library_type = library_type or settings.zotero_library_type
        self.transport = transport
        self.base_url = f"{settings.zotero_base_url.rstrip('/')}/{self.library_type}s/{self.library_id}"

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Zotero-API-Key": self.api_key or "",
            "Zotero-API-Version": "3",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=settings.api_timeout)

    def _raise_for_status(self, response: httpx.Response, action: str, key: Optional[str] = None,
                          version: Optional[int] = None):
        if response.status_code < 400:
            return
        if response.status_code == 412:
            raise VersionConflictError(key or "", version or 0)
        if response.status_code == 404:
            raise NotFoundError(f"{action}: {key or 'library'} not found", key=key)
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After") or response.headers.get("Backoff")
            raise RateLimitedError(f"{action}: rate limited by Zotero",
                                   retry_after=float(retry_after) if retry_after else None)
        if response.status_code == 403:
            raise NetworkError(f"{action}: invalid Zotero API key or insufficient permissions", status_code=403)

        detail = redact_secrets(response.text[:500])
        logger.error(f"❌ Zotero {action} failed ({response.status_code}) for {key or self.library_id}")
        raise NetworkError(f"{action} failed ({response.status_code}): {detail}", status_code=response.status_code)

    async def fetch_all(self, on_progress: Optional[Callable[[int, int], None]] = None) -> List[Record]:
        """Every record of the library, paging 100 at a time"""
        records: List[Record] = []
        start = 0

        try:
            async with self._client() as client:
                while True:
                    response = await client.get(
                        f"{self.base_url}/items",
                        headers=self.headers,
                        params={"limit": PAGE_SIZE, "start": start},
                    )
                    self._raise_for_status(response, "Fetch items")

                    items = response.json()
                    records.extend(Record.from_zotero(item) for item in items)
                    total = int(response.headers.get("Total-Results", "0") or 0)

                    if on_progress:
                        on_progress(len(records), total)
                    logger.debug(f"📚 Fetched {len(records)}/{total} Zotero items")

                    if len(items) < PAGE_SIZE or len(records) >= total:
                        break
                    start += PAGE_SIZE
        except httpx.HTTPError as e:
            raise NetworkError(f"Fetch items failed: {str(e)}")

        logger.info(f"📚 Loaded {len(records)} records from Zotero library {self.library_id}")
        return records

    async def fetch_one(self, key: str) -> Record:
        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}/items/{key}", headers=self.headers)
        except httpx.HTTPError as e:
            raise NetworkError(f"Fetch item {key} failed: {str(e)}")

        self._raise_for_status(response, "Fetch item", key=key)
        return Record.from_zotero(response.json())

    async def update(self, record: Record, patch: Dict[str, Any]) -> Record:
        """PATCH only the changed fields; raises VersionConflictError on HTTP 412"""
        headers = dict(self.headers)
        headers["Content-Type"] = "application/json"
        headers["If-Unmodified-Since-Version"] = str(record.version)

        try:
            async with self._client() as client:
                response = await client.patch(f"{self.base_url}/items/{record.key}", headers=headers, json=patch)
        except httpx.HTTPError as e:
            raise NetworkError(f"Update of {record.key} failed: {str(e)}")

        self._raise_for_status(response, "Update", key=record.key, version=record.version)

        new_version = response.headers.get("Last-Modified-Version")
        updated = record.with_fields(patch, version=int(new_version) if new_version else record.version + 1)
        logger.info(f"💾 Updated {record.key} to version {updated.version}")
        return updated

    async def delete(self, key: str, version: int):
        headers = dict(self.headers)
        headers["If-Unmodified-Since-Version"] = str(version)

        try:
            async with self._client() as client:
                response = await client.delete(f"{self.base_url}/items/{key}", headers=headers)
        except httpx.HTTPError as e:
            raise NetworkError(f"Delete of {key} failed: {str(e)}")

        self._raise_for_status(response, "Delete", key=key, version=version)
        logger.info(f"🗑️ Deleted {key}")
