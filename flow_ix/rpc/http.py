"""
Async HTTP client for a Flow-style access node (REST API).

Provides:
- a retrying async transport over httpx for idempotent reads
- typed helpers for the endpoints the pipeline needs:
  * GET  /v1/blocks?height=sealed               → latest sealed block id
  * GET  /v1/accounts/{address}?expand=keys     → key sequence numbers
  * POST /v1/transactions                       → submit a signed transaction

Notes
-----
* Reads retry on timeouts, transport errors and 429/502/503/504 with
  exponential backoff (`Config.max_retries`, `Config.backoff_base_s`).
* Submitting a transaction is never retried: a duplicate submission must be
  the caller's decision.
* Every failure surfaces as `NodeError`.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from ..config import Config, resolve_config
from ..errors import NodeError
from ..logging import get_logger
from ..utils.bytes import sans_prefix

__all__ = ["NodeClient"]

log = get_logger(__name__)

_RETRY_STATUS = (429, 502, 503, 504)


def _excerpt(resp: httpx.Response, limit: int = 256) -> str:
    try:
        return resp.text[:limit]
    except (UnicodeDecodeError, httpx.ResponseNotRead):  # pragma: no cover
        return repr(resp.content[:limit])


class NodeClient:
    """
    Minimal async client for the access node.

    Use as an async context manager, or call `close()` when done. An existing
    `httpx.AsyncClient` may be injected; it is then not closed by this object.
    """

    def __init__(self, config: Optional[Config] = None, *, client: Optional[httpx.AsyncClient] = None) -> None:
        self._cfg = resolve_config(config)
        self._client = client
        self._owns_client = client is None

    @property
    def config(self) -> Config:
        return self._cfg

    # ---------- lifecycle ----------

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._cfg.node,
                timeout=self._cfg.timeout_s,
                headers=self._cfg.http_headers(),
            )
            self._owns_client = True

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "NodeClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    # ---------- core transport ----------

    def _url(self, path: str) -> str:
        return f"{self._cfg.node}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        retry: bool = True,
    ) -> Any:
        if self._client is None:
            await self.start()
        assert self._client is not None  # for type-checkers

        url = self._url(path)
        attempts = 1 + (self._cfg.max_retries if retry else 0)
        attempt = 0
        while True:
            attempt += 1
            try:
                resp = await self._client.request(method, url, params=params, json=json)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                if attempt >= attempts:
                    raise NodeError(
                        f"{method} {path} failed after {attempt} attempt(s): {exc}", url=url, data=str(exc)
                    ) from exc
                await self._backoff(attempt, method, path, str(exc))
                continue

            status = resp.status_code
            if 200 <= status < 300:
                try:
                    return resp.json()
                except ValueError as exc:
                    raise NodeError("invalid JSON in response", url=url, http_status=status, data=_excerpt(resp)) from exc
            if status in _RETRY_STATUS and attempt < attempts:
                await self._backoff(attempt, method, path, f"HTTP {status}")
                continue
            raise NodeError(f"HTTP {status}", url=url, http_status=status, data=_excerpt(resp))

    async def _backoff(self, attempt: int, method: str, path: str, why: str) -> None:
        delay = self._cfg.backoff_base_s * (2 ** (attempt - 1))
        log.warning(
            "node request failed, retrying",
            extra={"method": method, "path": path, "attempt": attempt, "delay_s": delay, "error": why},
        )
        await asyncio.sleep(delay)

    # ---------- typed methods ----------

    async def get_latest_block_id(self) -> str:
        """Id (lowercase hex) of the latest sealed block."""
        data = await self._request("GET", "/v1/blocks", params={"height": "sealed"})
        block = data[0] if isinstance(data, list) and data else data
        try:
            block_id = block["header"]["id"]
        except (KeyError, TypeError) as exc:
            raise NodeError("malformed block response", url=self._url("/v1/blocks"), data=data) from exc
        if not isinstance(block_id, str) or not block_id:
            raise NodeError("block response carries no id", url=self._url("/v1/blocks"), data=data)
        return _block_id(block_id)

    async def get_account_keys(self, address: str) -> List[Dict[str, Any]]:
        path = f"/v1/accounts/{sans_prefix(address)}"
        data = await self._request("GET", path, params={"expand": "keys"})
        keys = data.get("keys") if isinstance(data, dict) else None
        if not isinstance(keys, list):
            raise NodeError("account response carries no keys", url=self._url(path), data=data)
        return keys

    async def get_sequence_number(self, address: str, key_id: int) -> int:
        """Current sequence number of key `key_id` on `address`."""
        for key in await self.get_account_keys(address):
            if int(key.get("index", -1)) == int(key_id):
                try:
                    return int(key["sequence_number"])
                except (KeyError, TypeError, ValueError) as exc:
                    raise NodeError(f"key {key_id} of {address} has no sequence number", data=key) from exc
        raise NodeError(f"account {address} has no key {key_id}", url=self._url(f"/v1/accounts/{sans_prefix(address)}"))

    async def send_transaction(self, body: Dict[str, Any]) -> Any:
        """POST a transaction body once; returns the node's raw JSON response."""
        return await self._request("POST", "/v1/transactions", json=body, retry=False)


def _block_id(block_id: str) -> str:
    s = block_id.strip().lower()
    return s[2:] if s.startswith("0x") else s
