import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import settings

logger = logging.getLogger(__name__)


# --- Errors ---
class UpstreamError(Exception):
    """Backend call failed: transport error, error status, or unusable body."""

    def __init__(self, path: str, reason: str, status_code: Optional[int] = None):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason
        self.status_code = status_code


class UpstreamNotFound(UpstreamError):
    """Backend answered 404 for the requested resource."""


class UpstreamRejected(UpstreamError):
    """Backend answered with ``{"success": false}``."""


def create_http_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=f"{settings.BACKEND_URL}/api",
        timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        headers={"Content-Type": "application/json"},
        transport=transport,
    )


# --- Client ---
class BackendClient:
    """Authenticated JSON access to the remote API."""

    def __init__(self, http: httpx.AsyncClient, token: Optional[str] = None):
        self.http = http
        self.token = token

    def _auth_headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self.http.get(path, params=params, headers=self._auth_headers())
        except httpx.HTTPError as exc:
            raise UpstreamError(path, f"{type(exc).__name__}: {exc}") from exc

        if response.status_code == 404:
            raise UpstreamNotFound(path, "not found", 404)
        if response.status_code >= 400:
            raise UpstreamError(path, f"HTTP {response.status_code}", response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamError(path, "response is not JSON", response.status_code) from exc
        if not isinstance(body, dict):
            raise UpstreamError(path, "response is not a JSON object", response.status_code)
        return body

    async def get_success(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        body = await self.get_json(path, params=params)
        if not body.get("success"):
            raise UpstreamRejected(path, body.get("message") or "unsuccessful response")
        return body


# --- Progress sources ---
class ProgressSources:
    """The upstream surfaces that can supply a learner's analytics data."""

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def get_canonical_progress(self, learner_id: str) -> Dict[str, Any]:
        body = await self.backend.get_success(f"/specialist/child/{learner_id}/analytics")
        progress = body.get("progress") if isinstance(body.get("progress"), dict) else {}
        sessions = progress.get("sessions", body.get("sessions"))
        learner = body.get("child") or body.get("learner") or {}
        return {
            "sessions": sessions if isinstance(sessions, list) else [],
            "learner": learner if isinstance(learner, dict) else {},
        }

    async def get_sessions_list(self, learner_id: str) -> List[Any]:
        body = await self.backend.get_success(f"/specialist/child/{learner_id}/sessions")
        sessions = body.get("sessions")
        if not isinstance(sessions, list):
            raise UpstreamError(f"/specialist/child/{learner_id}/sessions", "sessions missing")
        return sessions

    async def get_attempts_list(self, learner_id: str, limit: int) -> List[Any]:
        path = f"/specialist/child/{learner_id}/attempts"
        body = await self.backend.get_success(path, params={"limit": limit})
        attempts = body.get("attempts")
        if not isinstance(attempts, list):
            raise UpstreamError(path, "attempts missing")
        return attempts

    async def get_learner_profile(self, learner_id: str) -> Dict[str, Any]:
        body = await self.backend.get_success(f"/children/{learner_id}")
        child = body.get("child") or {}
        return {"name": child.get("name"), "age": child.get("age")}
