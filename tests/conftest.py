from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Sequence

import pytest
from fastapi.testclient import TestClient


# Ensure `import servicekit...` works when running `pytest` from repo root.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from servicekit import RouteDefinition, Service, ServiceOptions  # noqa: E402


@pytest.fixture
def make_service() -> Callable[..., Service]:
    def _make(routes: Sequence[RouteDefinition], **overrides: Any) -> Service:
        values: dict[str, Any] = {"name": "test-service", "routes": routes, "audit_logging": False}
        values.update(overrides)
        return Service(ServiceOptions(**values))

    return _make


@pytest.fixture
def make_client(make_service: Callable[..., Service]) -> Callable[..., TestClient]:
    def _make(routes: Sequence[RouteDefinition], **overrides: Any) -> TestClient:
        service = make_service(routes, **overrides)
        return TestClient(service.prepare())

    return _make
