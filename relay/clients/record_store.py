"""Kintone REST client for chat-thread records.

Threads are stored as one record each: ``assistant_config`` holds the system
instruction and the ``chat_log`` subtable holds one row per exchange with
``user_message`` and ``ai_reply`` fields. The client only moves records; what
a failure means for a request is decided by the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from relay.errors import RecordStoreError
from relay.models import ChatExchange, ChatThread


logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Cybozu-API-Token"
LATEST_QUERY = "order by $id desc limit 1"


def thread_query(record_id: str) -> str:
    return f"$id = {record_id}"


def _field_value(record: Dict[str, Any], key: str) -> Any:
    field = record.get(key)
    if isinstance(field, dict):
        return field.get("value")
    return None


def decode_thread(record: Dict[str, Any]) -> ChatThread:
    if not isinstance(record, dict):
        raise RecordStoreError("Malformed record in record store response")
    record_id = _field_value(record, "$id")
    if record_id is None:
        raise RecordStoreError("Record without $id in record store response")

    log: List[ChatExchange] = []
    rows = _field_value(record, "chat_log") or []
    if not isinstance(rows, list):
        raise RecordStoreError("Malformed chat_log in record store response")
    for row in rows:
        if not isinstance(row, dict):
            raise RecordStoreError("Malformed chat_log row in record store response")
        cells = row.get("value") or {}
        if not isinstance(cells, dict):
            raise RecordStoreError("Malformed chat_log row in record store response")
        row_id = row.get("id")
        log.append(
            ChatExchange(
                user_message=_field_value(cells, "user_message") or "",
                ai_reply=_field_value(cells, "ai_reply") or "",
                row_id=str(row_id) if row_id is not None else None,
            )
        )

    return ChatThread(
        id=str(record_id),
        assistant_config=_field_value(record, "assistant_config") or None,
        log=log,
    )


def encode_log(log: List[ChatExchange]) -> Dict[str, Any]:
    """Partial record replacing a thread's ``chat_log`` subtable."""
    rows = []
    for exchange in log:
        row: Dict[str, Any] = {
            "value": {
                "user_message": {"value": exchange.user_message},
                "ai_reply": {"value": exchange.ai_reply},
            }
        }
        # Existing rows keep their id, otherwise the store recreates them.
        if exchange.row_id is not None:
            row["id"] = exchange.row_id
        rows.append(row)
    return {"chat_log": {"value": rows}}


class RecordStoreClient:
    def __init__(
        self,
        domain: Optional[str],
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._domain = domain
        self._timeout = timeout
        self._client = client

    def _url(self, path: str) -> str:
        if not self._domain:
            raise RecordStoreError("KINTONE_DOMAIN not configured")
        return f"https://{self._domain}/k/v1/{path}"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            if self._client is not None:
                response = await self._client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, **kwargs)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise RecordStoreError(f"Record store call failed: {exc}") from exc
        return response

    async def fetch_by_query(
        self, app_id: Optional[str], token: Optional[str], query: str
    ) -> List[ChatThread]:
        response = await self._request(
            "GET",
            self._url("records.json"),
            params={"app": app_id or "", "query": query},
            headers={TOKEN_HEADER: token or ""},
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise RecordStoreError("Record store returned a non-JSON response") from exc
        if not isinstance(data, dict):
            raise RecordStoreError("Unexpected record store response shape")
        records = data.get("records") or []
        if not isinstance(records, list):
            raise RecordStoreError("Unexpected record store response shape")
        return [decode_thread(record) for record in records]

    async def update(
        self,
        app_id: Optional[str],
        token: Optional[str],
        record_id: str,
        record: Dict[str, Any],
    ) -> None:
        await self._request(
            "PUT",
            self._url("record.json"),
            json={"app": app_id, "id": record_id, "record": record},
            headers={TOKEN_HEADER: token or ""},
        )
        logger.debug("Updated record %s in app %s", record_id, app_id)
