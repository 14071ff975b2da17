from __future__ import annotations

import logging
from typing import Any

import httpx

from familysync.core.config import Settings
from familysync.core.errors import RecordNotFound, TransportFailure
from familysync.models.member import AccountStatus, DirectoryRecord

logger = logging.getLogger(__name__)


def _record_from_payload(payload: Any) -> DirectoryRecord:
    if not isinstance(payload, dict) or not payload.get("id"):
        raise TransportFailure("unexpected directory record response")
    fields = payload.get("fields") or {}
    if not isinstance(fields, dict):
        raise TransportFailure("unexpected directory record fields")
    return DirectoryRecord(
        id=str(payload["id"]),
        record_type=str(payload.get("recordType") or ""),
        fields=fields,
    )


class HttpDirectoryService:
    """
    Directory service backed by a REST record store.

    All paths live under `{directory_base_url}/containers/{directory_container_id}`.
    Transport and HTTP errors are raised as TransportFailure; a 404 on a single
    record is raised as RecordNotFound.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._base = settings.directory_container_url
        self._page_size = settings.directory_page_size
        if client is None:
            timeout = httpx.Timeout(settings.directory_timeout_seconds, connect=5.0)
            client = httpx.AsyncClient(timeout=timeout)
        self._client = client

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._settings.directory_api_token:
            headers["Authorization"] = f"Bearer {self._settings.directory_api_token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self._base}{path}"
        try:
            resp = await self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("directory %s %s failed: %s", method, path, exc)
            raise TransportFailure(f"directory request failed: {method} {path}", cause=exc) from exc
        return resp

    @staticmethod
    def _raise_for_status(resp: httpx.Response) -> None:
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransportFailure(
                f"directory responded {resp.status_code} for {resp.request.method} {resp.request.url.path}",
                cause=exc,
            ) from exc

    async def get_account_status(self) -> AccountStatus:
        resp = await self._request("GET", "/account/status")
        self._raise_for_status(resp)
        raw = resp.json().get("status")
        try:
            return AccountStatus(raw)
        except ValueError:
            logger.warning("unknown account status from directory: %r", raw)
            return AccountStatus.could_not_determine

    async def get_current_account_id(self) -> str:
        resp = await self._request("GET", "/account/id")
        self._raise_for_status(resp)
        account_id = resp.json().get("id")
        if not account_id:
            raise TransportFailure("directory account response missing id")
        return str(account_id)

    async def get_account_record(self, record_id: str) -> DirectoryRecord:
        resp = await self._request("GET", f"/records/{record_id}")
        if resp.status_code == 404:
            raise RecordNotFound(record_id)
        self._raise_for_status(resp)
        return _record_from_payload(resp.json())

    async def query_records(self, record_type: str) -> list[DirectoryRecord]:
        records: list[DirectoryRecord] = []
        first = 0
        while True:
            resp = await self._request(
                "GET",
                "/records",
                params={"recordType": record_type, "first": first, "max": self._page_size},
            )
            self._raise_for_status(resp)
            page = resp.json().get("records")
            if not isinstance(page, list):
                raise TransportFailure("unexpected directory query response")
            if not page:
                break
            records.extend(_record_from_payload(item) for item in page)
            if len(page) < self._page_size:
                break
            first += self._page_size
        return records

    async def save_record(self, record_type: str, fields: dict[str, Any]) -> DirectoryRecord:
        resp = await self._request("POST", "/records", json={"recordType": record_type, "fields": fields})
        self._raise_for_status(resp)
        return _record_from_payload(resp.json())

    async def delete_record(self, record_id: str) -> None:
        resp = await self._request("DELETE", f"/records/{record_id}")
        if resp.status_code == 404:
            raise RecordNotFound(record_id)
        self._raise_for_status(resp)
