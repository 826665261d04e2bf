"""Async API client with automatic access-token refresh.

Every request carries the stored access token as a bearer credential. When
the API answers 401, the client refreshes the session once (the refresh
cookie lives in the client's cookie jar) and replays the request with the
new token. However many requests fail at the same time, only one refresh
call is made: the others wait for it and replay together, in no particular
order. If the refresh fails, all of them fail with `SessionExpired`, the
stored session is cleared and `on_session_expired` runs.

Usage:
    async with TaskboardClient("http://localhost:5000") as client:
        await client.login("ada@example.com", "Secr3t!pass")
        page = await client.list_tasks(status="pending", limit=20)
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from .singleflight import SingleFlight

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
REFRESH_PATH = "/auth/refresh"
# Credential-exchange calls answer 401 for bad input, not for a stale session.
_NO_REFRESH_PATHS = ("/auth/login", "/auth/register", REFRESH_PATH, "/auth/logout")

SessionExpiredCallback = Callable[[], Union[None, Awaitable[None]]]


class ApiError(Exception):
    """Non-2xx answer from the API, built from the response envelope."""

    def __init__(
        self,
        status_code: int,
        message: str,
        errors: Optional[List[Dict[str, str]]] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.errors = errors or []
        self.code = code

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or f"Request failed with status {response.status_code}"
        return cls(response.status_code, message, body.get("errors"), body.get("code"))


class NetworkError(Exception):
    """The request never produced a response (connection failure or timeout)."""


class SessionExpired(ApiError):
    def __init__(self, message: str = "Session expired. Please log in again.") -> None:
        super().__init__(401, message)


class SessionStore(ABC):
    """Where the client keeps the access token and the signed-in user."""

    @abstractmethod
    def get_token(self) -> Optional[str]: ...

    @abstractmethod
    def get_user(self) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def save(self, token: Optional[str], user: Optional[Dict[str, Any]]) -> None: ...

    def set_token(self, token: str) -> None:
        self.save(token, self.get_user())

    def clear(self) -> None:
        self.save(None, None)

    def is_authenticated(self) -> bool:
        return bool(self.get_token())


class MemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._token: Optional[str] = None
        self._user: Optional[Dict[str, Any]] = None

    def get_token(self) -> Optional[str]:
        return self._token

    def get_user(self) -> Optional[Dict[str, Any]]:
        return self._user

    def save(self, token: Optional[str], user: Optional[Dict[str, Any]]) -> None:
        self._token = token
        self._user = user


class FileSessionStore(SessionStore):
    """Session mirrored to a JSON file so it survives restarts."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable session file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def get_token(self) -> Optional[str]:
        return self._read().get("accessToken")

    def get_user(self) -> Optional[Dict[str, Any]]:
        return self._read().get("user")

    def save(self, token: Optional[str], user: Optional[Dict[str, Any]]) -> None:
        if token is None and user is None:
            self.path.unlink(missing_ok=True)
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({"accessToken": token, "user": user}), encoding="utf-8")


class TaskboardClient:
    def __init__(
        self,
        base_url: str,
        store: Optional[SessionStore] = None,
        on_session_expired: Optional[SessionExpiredCallback] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.store = store or MemorySessionStore()
        self._on_session_expired = on_session_expired
        self._refresh = SingleFlight()
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/api",
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "TaskboardClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- request pipeline -------------------------------------------------

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        retried: bool = False,
    ) -> httpx.Response:
        token = self.store.get_token()
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            response = await self._client.request(method, path, json=json, params=params, headers=headers)
        except httpx.TransportError as exc:
            raise NetworkError(str(exc) or exc.__class__.__name__) from exc

        if response.status_code != 401 or retried or path in _NO_REFRESH_PATHS:
            return response

        current = self.store.get_token()
        if current is None and token is not None:
            # Cleared by a refresh that failed while this request was in flight.
            raise SessionExpired()
        if current == token:
            # Still holding the rejected token: refresh (once, shared).
            await self._refresh_session()
        return await self._send(method, path, json=json, params=params, retried=True)

    async def _refresh_session(self) -> str:
        return await self._refresh.do("refresh", self._do_refresh)

    async def _do_refresh(self) -> str:
        try:
            response = await self._client.post(REFRESH_PATH)
        except httpx.TransportError as exc:
            await self._expire_session()
            raise SessionExpired() from exc

        if not response.is_success:
            await self._expire_session()
            raise SessionExpired() from ApiError.from_response(response)

        token = response.json()["data"]["accessToken"]
        self.store.set_token(token)
        return token

    async def _expire_session(self) -> None:
        logger.info("Session refresh failed; clearing local session")
        self.store.clear()
        self._client.cookies.clear()
        if self._on_session_expired is not None:
            result = self._on_session_expired()
            if asyncio.iscoroutine(result):
                await result

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send a request through the pipeline and return the decoded envelope."""
        response = await self._send(method, path, json=json, params=params)
        if not response.is_success:
            raise ApiError.from_response(response)
        return response.json()

    # -- auth -------------------------------------------------------------

    async def register(self, name: str, email: str, password: str) -> Dict[str, Any]:
        body = await self.request("POST", "/auth/register", json={"name": name, "email": email, "password": password})
        data = body["data"]
        self.store.save(data["accessToken"], data["user"])
        return data["user"]

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        body = await self.request("POST", "/auth/login", json={"email": email, "password": password})
        data = body["data"]
        self.store.save(data["accessToken"], data["user"])
        return data["user"]

    async def refresh(self) -> str:
        return await self._refresh_session()

    async def logout(self) -> None:
        try:
            await self.request("POST", "/auth/logout")
        finally:
            self.store.clear()
            self._client.cookies.clear()

    # -- profile ----------------------------------------------------------

    async def get_profile(self) -> Dict[str, Any]:
        body = await self.request("GET", "/user/profile")
        return body["data"]["user"]

    async def update_profile(self, name: Optional[str] = None, email: Optional[str] = None) -> Dict[str, Any]:
        payload = {key: value for key, value in (("name", name), ("email", email)) if value is not None}
        body = await self.request("PUT", "/user/profile", json=payload)
        user = body["data"]["user"]
        self.store.save(self.store.get_token(), user)
        return user

    # -- tasks ------------------------------------------------------------

    async def create_task(
        self,
        title: str,
        description: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"title": title}
        if description is not None:
            payload["description"] = description
        if status is not None:
            payload["status"] = status
        if priority is not None:
            payload["priority"] = priority
        body = await self.request("POST", "/tasks", json=payload)
        return body["data"]["task"]

    async def list_tasks(self, **filters: Any) -> Dict[str, Any]:
        """Return `{tasks, pagination}`; filters: status, priority, search, page, limit, sort."""
        params = {key: value for key, value in filters.items() if value is not None}
        body = await self.request("GET", "/tasks", params=params)
        return body["data"]

    async def get_task(self, task_id: str) -> Dict[str, Any]:
        body = await self.request("GET", f"/tasks/{task_id}")
        return body["data"]["task"]

    async def update_task(self, task_id: str, **fields: Any) -> Dict[str, Any]:
        body = await self.request("PUT", f"/tasks/{task_id}", json=fields)
        return body["data"]["task"]

    async def delete_task(self, task_id: str) -> None:
        await self.request("DELETE", f"/tasks/{task_id}")

    async def health(self) -> Dict[str, Any]:
        return await self.request("GET", "/health")
