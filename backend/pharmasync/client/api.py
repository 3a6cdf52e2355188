# Overview: httpx wrapper for the sync endpoints with bearer auth.

from __future__ import annotations

from typing import Dict, Optional

import httpx


class SyncApiClient:
    """
    HTTP client for one device.

    `transport` lets tests drive the Flask app in-process
    (httpx.WSGITransport(app=app)).
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def _headers(self) -> Dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def health(self) -> bool:
        """True when the server answers and its database is reachable."""
        try:
            response = self.client.get("/api/health")
        except httpx.HTTPError:
            return False
        return response.status_code == 200

    def push(self, body: dict) -> httpx.Response:
        return self.client.post("/api/sync/push", headers=self._headers(), json=body)

    def pull(self, last_sync_at: Optional[str] = None) -> httpx.Response:
        params = {"lastSyncAt": last_sync_at} if last_sync_at else None
        return self.client.get("/api/sync/pull", headers=self._headers(), params=params)

    def audit(self, snapshots: dict) -> httpx.Response:
        return self.client.post("/api/sync/audit", headers=self._headers(), json=snapshots)

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
