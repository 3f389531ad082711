import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
import jwt
import pytest

from portal_setup.audit import InMemoryAuditStore, JsonAuditLogger
from portal_setup.auth import REQUIRED_SCOPES
from portal_setup.config import RetrySettings, SecretRef, SetupConfig

DOMAIN = "t.example.com"


def make_token(domain: str = DOMAIN, scopes: Optional[List[str]] = None, **claims: Any) -> str:
    payload = {
        "iss": f"https://{domain}/",
        "scope": " ".join(REQUIRED_SCOPES if scopes is None else scopes),
    }
    payload.update(claims)
    return jwt.encode(payload, "test-secret", algorithm="HS256")


class FakeManagementApi:
    """In-memory stand-in for the Auth0 Management API behind httpx.MockTransport.

    ``failures`` maps ``(method, path)`` to status codes returned, in order,
    before the call starts succeeding.
    """

    def __init__(self, connections: Optional[List[Dict[str, Any]]] = None):
        self.connections: Dict[str, Dict[str, Any]] = {
            c["id"]: dict(c) for c in (connections or [])
        }
        self.created: Dict[str, List[Dict[str, Any]]] = {}
        self.log: List[Tuple[str, str, Any]] = []
        self.failures: Dict[Tuple[str, str], List[int]] = {}
        self._counter = 0

    def fail(self, method: str, path: str, *statuses: int) -> None:
        self.failures.setdefault((method, path), []).extend(statuses)

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    def requests(self, method: str, path: str) -> List[Any]:
        return [body for m, p, body in self.log if m == method and p == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.replace("/api/v2/", "", 1)
        body = json.loads(request.content) if request.content else None
        method = request.method
        self.log.append((method, path, body))

        assert request.headers["Authorization"].startswith("Bearer ")

        pending = self.failures.get((method, path))
        if pending:
            status = pending.pop(0)
            return httpx.Response(status, json={"statusCode": status, "error": "fake failure"})

        if method == "GET" and path == "connections":
            strategy = request.url.params.get("strategy")
            matches = [
                {"id": c["id"], "name": c["name"]}
                for c in self.connections.values()
                if c["strategy"] == strategy
            ]
            return httpx.Response(200, json=matches)

        if method == "GET" and path.startswith("connections/"):
            connection = self.connections.get(path.split("/", 1)[1])
            if connection is None:
                return httpx.Response(404, json={"error": "Not Found"})
            return httpx.Response(200, json=connection)

        if method == "PATCH" and path.startswith("connections/"):
            connection = self.connections[path.split("/", 1)[1]]
            connection.update(body)
            return httpx.Response(200, json=connection)

        if method == "POST":
            entity = dict(body)
            if path == "clients":
                entity["client_id"] = self._next_id("client")
                entity["client_secret"] = f"secret-for-{entity['client_id']}"
            else:
                entity["id"] = self._next_id(path)
            self.created.setdefault(path, []).append(entity)
            return httpx.Response(201, json=entity)

        return httpx.Response(405, text="unsupported")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def audit_store() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def audit_logger(audit_store: InMemoryAuditStore) -> JsonAuditLogger:
    return JsonAuditLogger(name="portal_setup.tests", store=audit_store)


@pytest.fixture
def setup_config(tmp_path) -> SetupConfig:
    return SetupConfig(
        domain=DOMAIN,
        token=SecretRef(value=make_token()),
        portal_url="https://portal.example.com/",
        output_dir=tmp_path,
        retry=RetrySettings(delay_seconds=5.0),
    )


@pytest.fixture
def connections() -> List[Dict[str, Any]]:
    return [
        {"id": "con_ad", "name": "corp-ad", "strategy": "ad", "enabled_clients": ["x"]},
        {"id": "con_sms", "name": "sms", "strategy": "sms", "enabled_clients": []},
        {"id": "con_email", "name": "email", "strategy": "email", "enabled_clients": ["y"]},
    ]


@pytest.fixture
def fake_api(connections) -> FakeManagementApi:
    return FakeManagementApi(connections)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def api_client(setup_config, audit_logger, fake_api):
    from portal_setup.api_client import ManagementApiClient
    from portal_setup.auth import ManagementAuthenticator

    authenticator = ManagementAuthenticator(setup_config, audit_logger)
    return ManagementApiClient(
        setup_config, authenticator, audit_logger, http_client=fake_api.client()
    )


@pytest.fixture
def retry_policy(setup_config, audit_logger, recording_sleep):
    from portal_setup.retry import RetryPolicy

    return RetryPolicy(setup_config.retry, audit_logger=audit_logger, sleep=recording_sleep)
