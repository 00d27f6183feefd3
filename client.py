import asyncio
import logging
import requests
from typing import Optional

from errors import PersistenceReadFailed, PersistenceWriteFailed

logger = logging.getLogger(__name__)


class BackendClient:
    """Simple REST client for the hosted goals backend.

    Speaks the PostgREST dialect: tables live under ``/rest/v1/<table>`` and
    filters are passed as ``column=eq.value`` query parameters.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        api_key: str = "",
        token: str = "",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _send(
        self, method: str, path: str, extra_headers: Optional[dict] = None, **kwargs
    ) -> requests.Response:
        return self.session.request(
            method,
            f"{self.base_url}{path}",
            headers={**self._headers(), **(extra_headers or {})},
            timeout=self.timeout,
            **kwargs,
        )

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        resp = self._send(method, path, **kwargs)
        resp.raise_for_status()
        return resp

    @staticmethod
    def _filters(filters: dict) -> dict:
        return {k: f"eq.{v}" for k, v in filters.items()}

    def insert(self, table: str, record: dict) -> dict:
        resp = self._request(
            "POST",
            f"/rest/v1/{table}",
            extra_headers={"Prefer": "return=representation"},
            json=record,
        )
        rows = resp.json()
        return rows[0] if isinstance(rows, list) and rows else dict(record)

    def update(self, table: str, filters: dict, patch: dict) -> None:
        self._request("PATCH", f"/rest/v1/{table}", params=self._filters(filters), json=patch)

    def select(self, table: str, filters: dict) -> list[dict]:
        resp = self._request("GET", f"/rest/v1/{table}", params=self._filters(filters))
        return resp.json()

    def current_user(self) -> Optional[str]:
        if not self.token:
            return None
        resp = self._send("GET", "/auth/v1/user")
        if resp.status_code == 401:
            return None
        resp.raise_for_status()
        return resp.json().get("id")

    def signup(self, username: str) -> dict:
        resp = self._request("POST", "/auth/v1/signup", params={"username": username})
        data = resp.json()
        self.token = data["token"]
        return data

    def health(self) -> dict:
        return self._request("GET", "/health").json()


class RemoteStore:
    """Async record store backed by :class:`BackendClient`.

    HTTP calls block, so each one runs in a worker thread.
    """

    def __init__(self, client: BackendClient) -> None:
        self.client = client

    async def insert_one(self, table: str, record: dict) -> dict:
        try:
            return await asyncio.to_thread(self.client.insert, table, record)
        except (requests.RequestException, ValueError) as e:
            raise PersistenceWriteFailed(table, str(e)) from e

    async def update_one(self, table: str, filters: dict, patch: dict) -> None:
        try:
            await asyncio.to_thread(self.client.update, table, filters, patch)
        except requests.RequestException as e:
            raise PersistenceWriteFailed(table, str(e)) from e

    async def fetch_one(self, table: str, filters: dict) -> dict:
        try:
            rows = await asyncio.to_thread(self.client.select, table, filters)
        except (requests.RequestException, ValueError) as e:
            raise PersistenceReadFailed(table, str(e)) from e
        if len(rows) != 1:
            raise PersistenceReadFailed(
                table, f"expected exactly one record, found {len(rows)}"
            )
        return rows[0]


def client_from_settings(settings) -> BackendClient:
    return BackendClient(
        settings.backend_url,
        api_key=settings.backend_key,
        token=settings.user_token,
        timeout=settings.request_timeout,
    )


def store_from_settings(settings):
    """Remote store when a backend URL is configured, local SQLite otherwise."""
    if settings.uses_remote_backend:
        logger.info("Using remote backend at %s", settings.backend_url)
        return RemoteStore(client_from_settings(settings))
    from db import LocalStore

    logger.info("Using local store %s", settings.db_path)
    return LocalStore(settings.db_path)
