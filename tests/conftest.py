import os

os.environ.setdefault("LOG_TO_FILE", "0")
os.environ.setdefault("HEALTH_CHECK_ENABLED", "0")
os.environ.setdefault("ENVIRONMENT", "test")

from typing import Any, Dict, List

import httpx
import pytest

from specialist_portal import redis_session
from specialist_portal.upstream import BackendClient, UpstreamNotFound


class FakeRedis:
    def __init__(self):
        self.lists: Dict[str, List[str]] = {}
        self.expiries: Dict[str, Any] = {}

    def rpush(self, key, *values):
        self.lists.setdefault(key, []).extend(values)
        return len(self.lists[key])

    def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start : end + 1]

    def delete(self, *keys):
        for key in keys:
            self.lists.pop(key, None)

    def expire(self, key, ttl):
        self.expiries[key] = ttl
        return True


class FakeEngine:
    def __init__(self, output: Any = b"%PDF-1.7\n%fake document\n"):
        self.output = output
        self.closed = False
        self.html = None
        self.options = None

    def render(self, html, options):
        self.html = html
        self.options = options
        if isinstance(self.output, Exception):
            raise self.output
        return self.output

    def close(self):
        self.closed = True


class FakeSources:
    """In-memory stand-in for the upstream progress surfaces."""

    def __init__(
        self,
        canonical: Any = None,
        sessions: Any = UpstreamNotFound("/sessions", "not found", 404),
        attempts: Any = UpstreamNotFound("/attempts", "not found", 404),
        profile: Any = None,
    ):
        self.canonical = canonical if canonical is not None else {"sessions": [], "learner": {}}
        self.sessions = sessions
        self.attempts = attempts
        self.profile = profile if profile is not None else {"name": None, "age": None}
        self.calls: List[str] = []

    @staticmethod
    def _answer(value):
        if isinstance(value, Exception):
            raise value
        return value

    async def get_canonical_progress(self, learner_id):
        self.calls.append("canonical")
        return self._answer(self.canonical)

    async def get_sessions_list(self, learner_id):
        self.calls.append("sessions")
        return self._answer(self.sessions)

    async def get_attempts_list(self, learner_id, limit):
        self.calls.append(f"attempts:{limit}")
        return self._answer(self.attempts)

    async def get_learner_profile(self, learner_id):
        self.calls.append("profile")
        return self._answer(self.profile)


def make_backend(routes: Dict[str, Any], token: str = None) -> BackendClient:
    """BackendClient over a mock transport; ``routes`` maps API paths to JSON bodies or status codes."""
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        path = request.url.path[len("/api"):]
        answer = routes.get(path)
        if answer is None:
            return httpx.Response(404, json={"success": False, "message": "Not found"})
        if isinstance(answer, int):
            return httpx.Response(answer, json={"success": False})
        if isinstance(answer, bytes):
            return httpx.Response(200, content=answer)
        return httpx.Response(200, json=answer)

    http = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://backend.test/api"
    )
    backend = BackendClient(http, token)
    backend.seen = seen
    return backend


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(redis_session, "redis_client", fake)
    return fake


@pytest.fixture
def raw_sessions():
    return [
        {
            "sessionDate": "2024-03-01T10:00:00Z",
            "duration": 300,
            "totalAttempts": 10,
            "successfulAttempts": 9,
            "averageScore": 90,
            "attempts": [
                {"word": "cat", "success": True, "score": 88, "timestamp": "2024-03-01T10:01:00Z"},
                {"letter": "b", "success": True, "score": 92, "timestamp": "2024-03-01T10:02:00Z"},
            ],
        },
        {
            "session_date": "2024-03-08T10:00:00Z",
            "duration": "420",
            "total_attempts": "10",
            "successful_attempts": 3,
            "average_score": 40,
            "attempts": [
                {
                    "word": "dog",
                    "success": False,
                    "score": 30,
                    "pronunciationScore": 35,
                    "recognizedText": "dok",
                    "timestamp": "2024-03-08T10:01:00Z",
                },
                {
                    "word": "dog",
                    "success": True,
                    "score": 70,
                    "pronunciationScore": 75,
                    "recognizedText": "dog",
                    "analysisSource": "azure",
                    "timestamp": "2024-03-08T10:05:00Z",
                },
                {"success": False, "score": 10, "timestamp": "2024-03-08T10:03:00Z"},
                {"vowel": "a", "success": True, "score": 60},
            ],
        },
    ]
