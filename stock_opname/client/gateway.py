# stock_opname/client/gateway.py
from __future__ import annotations

from typing import Any, Optional

import httpx


class GatewayClient:
    """
    Thin HTTP client for the stock endpoints.

    Non-2xx answers raise httpx.HTTPStatusError; transport failures raise
    the usual httpx.TransportError. Both are httpx.HTTPError.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        api_prefix: str = "/api",
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._stocks_path = f"{api_prefix}/stocks"

    def __enter__(self) -> "GatewayClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def list_stocks(self) -> list[dict]:
        response = self._client.get(self._stocks_path)
        response.raise_for_status()
        return response.json()

    def upsert_stock(self, payload: dict) -> dict:
        """Returns the row as stored by the server."""
        response = self._client.post(self._stocks_path, json=payload)
        response.raise_for_status()
        return response.json()["data"]

    def upsert_stocks(self, payloads: list[dict]) -> int:
        response = self._client.post(f"{self._stocks_path}/bulk", json=payloads)
        response.raise_for_status()
        return response.json()["count"]
