"""
Pytest fixtures for the billing kernel test suite.

Provides:
- Structured logging setup and the ``captured_logs`` fixture
- A client configuration pointing at a fake API host
- ``FakeBillingServer``: an ``httpx.MockTransport`` router that records requests
- ``harness``: factory wiring session, API client and action service for a role
"""

import json
import logging
from dataclasses import dataclass
from io import StringIO
from typing import Any, Callable

import httpx
import pytest

from billing_config.schema import ApiConfig, BulkConfig, ClientConfig
from billing_kernel.domain.documents import Document, DocumentType
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from billing_services.api_client import BillingApiClient
from billing_services.document_actions import DocumentActionService
from billing_services.session import SessionContext

BASE_URL = "https://billing.test/api"
API_PREFIX = "/api"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture billing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, harness):
            ...
            logs = captured_logs()
            assert any(r["message"] == "clearance_checked" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("billing_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Fake remote API
# =============================================================================


def make_envelope(
    data: Any = None,
    *,
    succeeded: bool = True,
    message: str | None = None,
    errors: list[str] | None = None,
) -> dict:
    """Build the ``{succeeded, message, errors, data}`` response body."""
    return {
        "succeeded": succeeded,
        "message": message,
        "errors": errors or [],
        "data": data,
    }


@pytest.fixture
def envelope():
    """The envelope builder, as a fixture."""
    return make_envelope


class FakeBillingServer:
    """Routes MockTransport requests by (method, path) and records them.

    Paths are given relative to the API prefix, e.g. ``/invoices/1/submit``.
    A route is either ``(status_code, json_body)`` or a callable taking the
    request and returning a response (or an awaitable of one).
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Any] = {}
        self.requests: list[httpx.Request] = []

    def on(
        self,
        method: str,
        path: str,
        json_body: Any = None,
        *,
        status_code: int = 200,
        handler: Callable[[httpx.Request], Any] | None = None,
    ) -> None:
        key = (method.upper(), API_PREFIX + path)
        self.routes[key] = handler if handler is not None else (status_code, json_body)

    def handler(self, request: httpx.Request) -> Any:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(
                404, json=make_envelope(succeeded=False, message="Route not found")
            )
        if callable(route):
            return route(request)
        status_code, body = route
        return httpx.Response(status_code, json=body)

    def calls(self, method: str | None = None, path: str | None = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if (method is None or r.method == method.upper())
            and (path is None or r.url.path == API_PREFIX + path)
        ]


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(
        name="test",
        api=ApiConfig(base_url=BASE_URL, timeout_seconds=5.0),
        bulk=BulkConfig(max_concurrency=2),
    )


@dataclass
class Harness:
    server: FakeBillingServer
    session: SessionContext
    api: BillingApiClient
    actions: DocumentActionService
    config: ClientConfig

    def seed(self, *documents: Document) -> None:
        """Load documents into the caches as if freshly fetched."""
        by_type: dict[DocumentType, list[Document]] = {}
        for d in documents:
            by_type.setdefault(d.document_type, []).append(d)
        for document_type, docs in by_type.items():
            self.actions.cache(document_type).replace_all(docs)


@pytest.fixture
def harness(client_config):
    """Factory: ``harness("Clerk")`` -> wired Harness for that role."""

    def _make(role: str = "Manager", token: str | None = "test-token") -> Harness:
        server = FakeBillingServer()
        session = SessionContext(role, token)
        http = httpx.AsyncClient(
            base_url=client_config.api.base_url,
            transport=httpx.MockTransport(server.handler),
        )
        api = BillingApiClient(session, client_config, http_client=http)
        actions = DocumentActionService(session, api)
        return Harness(server, session, api, actions, client_config)

    return _make
