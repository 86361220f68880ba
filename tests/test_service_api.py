from __future__ import annotations

from typing import Any, Callable

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from pydantic import BaseModel

from servicekit import (
    NotFoundError,
    RequestData,
    RouteConfig,
    RouteDefinition,
    RouteSchema,
)


ITEM_SCHEMA = {
    "type": "object",
    "required": ["id", "name"],
    "properties": {"id": {"type": "integer"}, "name": {"type": "string"}},
}


class ItemIn(BaseModel):
    name: str
    quantity: int = 1


async def echo(data: RequestData, extensions: Any) -> dict:
    return {
        "body": data.body,
        "params": data.params,
        "query": data.query,
        "headers": data.headers,
    }


def test_get_returns_handler_result_unchanged(make_client: Callable[..., TestClient]) -> None:
    payload = {"items": [{"id": 1}, {"id": 2}], "total": 2, "next": None}

    async def list_items(data: RequestData, extensions: Any) -> dict:
        return payload

    client = make_client([RouteDefinition("GET", "/items", list_items)])
    resp = client.get("/api/items")

    assert resp.status_code == 200
    assert resp.json() == payload


def test_sync_handlers_are_supported(make_client: Callable[..., TestClient]) -> None:
    def ping(data: RequestData, extensions: Any) -> dict:
        return {"pong": True}

    client = make_client([RouteDefinition("GET", "/ping", ping)])

    assert client.get("/api/ping").json() == {"pong": True}


def test_post_with_result_is_201_and_without_is_200(make_client: Callable[..., TestClient]) -> None:
    async def create(data: RequestData, extensions: Any) -> dict:
        return {"id": 1, **data.body}

    async def fire_and_forget(data: RequestData, extensions: Any) -> None:
        return None

    client = make_client([
        RouteDefinition("POST", "/items", create, schema={"body": {"type": "object"}}),
        RouteDefinition("POST", "/events", fire_and_forget),
    ])

    created = client.post("/api/items", json={"name": "widget"})
    assert created.status_code == 201
    assert created.json() == {"id": 1, "name": "widget"}

    accepted = client.post("/api/events", json={"kind": "x"})
    assert accepted.status_code == 200
    assert accepted.json() is None


def test_delete_is_204_with_empty_body(make_client: Callable[..., TestClient]) -> None:
    async def delete_item(data: RequestData, extensions: Any) -> dict:
        return {"deleted": True}

    client = make_client([RouteDefinition("DELETE", "/items/{item_id}", delete_item)])
    resp = client.delete("/api/items/3")

    assert resp.status_code == 204
    assert resp.content == b""


@pytest.mark.parametrize("method", ["PUT", "PATCH"])
def test_updates_are_200(make_client: Callable[..., TestClient], method: str) -> None:
    async def update(data: RequestData, extensions: Any) -> dict:
        return {"updated": True}

    client = make_client([RouteDefinition(method, "/items/{item_id}", update)])
    resp = client.request(method, "/api/items/3", json={})

    assert resp.status_code == 200


def test_only_declared_sections_reach_the_handler(make_client: Callable[..., TestClient]) -> None:
    schema = RouteSchema(
        params={"type": "object", "properties": {"item_id": {"type": "integer"}}},
        query={"type": "object", "properties": {"verbose": {"type": "boolean"}}},
    )
    client = make_client([RouteDefinition("PUT", "/items/{item_id}", echo, schema=schema)])

    resp = client.put("/api/items/42?verbose=true", json={"ignored": True})

    assert resp.status_code == 200
    assert resp.json() == {
        "body": None,
        "params": {"item_id": 42},
        "query": {"verbose": True},
        "headers": None,
    }


def test_declared_body_that_is_absent_is_omitted(make_client: Callable[..., TestClient]) -> None:
    schema = RouteSchema(body={"description": "optional payload"})
    client = make_client([RouteDefinition("PATCH", "/items", echo, schema=schema)])

    resp = client.patch("/api/items")

    assert resp.status_code == 200
    assert resp.json()["body"] is None


def test_query_coercion_and_defaults(make_client: Callable[..., TestClient]) -> None:
    schema = RouteSchema(query={
        "type": "object",
        "properties": {
            "limit": {"type": "integer", "default": 20},
            "tag": {"type": "array", "items": {"type": "string"}},
        },
    })
    client = make_client([RouteDefinition("GET", "/search", echo, schema=schema)])

    resp = client.get("/api/search?tag=a&tag=b")

    assert resp.json()["query"] == {"limit": 20, "tag": ["a", "b"]}


def test_headers_are_validated_and_passed(make_client: Callable[..., TestClient]) -> None:
    schema = RouteSchema(headers={
        "type": "object",
        "required": ["x-tenant"],
        "properties": {"x-tenant": {"type": "string", "minLength": 2}},
    })
    client = make_client([RouteDefinition("GET", "/whoami", echo, schema=schema)])

    ok = client.get("/api/whoami", headers={"X-Tenant": "acme"})
    assert ok.status_code == 200
    assert ok.json()["headers"]["x-tenant"] == "acme"

    missing = client.get("/api/whoami")
    assert missing.status_code == 400
    assert missing.json()["details"]["errors"][0]["section"] == "headers"


def test_mixed_case_header_schema_matches_lowercased_headers(
    make_client: Callable[..., TestClient],
) -> None:
    schema = RouteSchema(headers={
        "type": "object",
        "required": ["X-Tenant"],
        "properties": {"X-Tenant": {"type": "string"}, "X-Page": {"type": "integer"}},
    })
    client = make_client([RouteDefinition("GET", "/whoami", echo, schema=schema)])

    resp = client.get("/api/whoami", headers={"X-Tenant": "acme", "X-Page": "3"})

    assert resp.status_code == 200
    assert resp.json()["headers"]["x-tenant"] == "acme"
    assert resp.json()["headers"]["x-page"] == 3

    missing = client.get("/api/whoami", headers={"X-Page": "3"})
    assert missing.status_code == 400
    assert missing.json()["reason"] == "field: 'x-tenant' is a required property"


def test_lenient_mode_strips_undeclared_properties(make_client: Callable[..., TestClient]) -> None:
    schema = RouteSchema(
        body={"type": "object", "properties": {"name": {"type": "string"}}},
        query={"type": "object", "properties": {"limit": {"type": "integer"}}},
    )
    routes = [RouteDefinition("POST", "/users", echo, schema=schema)]

    lenient = make_client(routes, strict_validation=False)
    resp = lenient.post("/api/users?limit=5&debug=1", json={"name": "Ada", "admin": True})
    assert resp.status_code == 200
    assert resp.json()["body"] == {"name": "Ada"}
    assert resp.json()["query"] == {"limit": 5}

    strict = make_client(routes)
    resp = strict.post("/api/users?limit=5&debug=1", json={"name": "Ada", "admin": True})
    assert resp.json()["body"] == {"name": "Ada", "admin": True}
    assert resp.json()["query"] == {"limit": 5, "debug": "1"}


def test_request_validation_reports_every_failure(make_client: Callable[..., TestClient]) -> None:
    called = []

    async def create(data: RequestData, extensions: Any) -> dict:
        called.append(True)
        return data.body

    schema = RouteSchema(body={
        "type": "object",
        "required": ["email"],
        "properties": {"email": {"type": "string"}, "age": {"type": "integer", "minimum": 0}},
    })
    client = make_client([RouteDefinition("POST", "/users", create, schema=schema)])

    resp = client.post("/api/users", json={"age": -5})

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Validation Error"
    assert body["details"]["type"] == "request_validation"
    assert len(body["details"]["errors"]) == 2
    assert body["reason"] == "field: 'email' is a required property"
    assert called == []


def test_invalid_params_are_rejected(make_client: Callable[..., TestClient]) -> None:
    schema = RouteSchema(params={"type": "object", "properties": {"item_id": {"type": "integer"}}})
    client = make_client([RouteDefinition("GET", "/items/{item_id}", echo, schema=schema)])

    resp = client.get("/api/items/abc")

    assert resp.status_code == 400
    assert resp.json()["reason"] == "item_id: 'abc' is not of type 'integer'"


def test_invalid_json_body_is_rejected(make_client: Callable[..., TestClient]) -> None:
    client = make_client([
        RouteDefinition("POST", "/items", echo, schema={"body": {"type": "object"}}),
    ])

    resp = client.post("/api/items", content=b"{not json", headers={"content-type": "application/json"})

    assert resp.status_code == 400
    assert resp.json()["details"]["errors"][0]["keyword"] == "json"


def test_required_body_missing_entirely(make_client: Callable[..., TestClient]) -> None:
    client = make_client([
        RouteDefinition("POST", "/items", echo, schema={"body": {"type": "object"}}),
    ])

    resp = client.post("/api/items")

    assert resp.status_code == 400


def test_pydantic_body_schema(make_client: Callable[..., TestClient]) -> None:
    client = make_client([RouteDefinition("POST", "/items", echo, schema=RouteSchema(body=ItemIn))])

    ok = client.post("/api/items", json={"name": "widget"})
    assert ok.status_code == 201
    assert ok.json()["body"] == {"name": "widget", "quantity": 1}

    bad = client.post("/api/items", json={"quantity": "many"})
    assert bad.status_code == 400


def test_valid_response_schema_passes(make_client: Callable[..., TestClient]) -> None:
    async def get_item(data: RequestData, extensions: Any) -> dict:
        return {"id": 1, "name": "widget"}

    client = make_client([
        RouteDefinition("GET", "/items/{item_id}", get_item, schema={"response": {200: ITEM_SCHEMA}}),
    ])
    resp = client.get("/api/items/1")

    assert resp.status_code == 200
    assert resp.json() == {"id": 1, "name": "widget"}


def test_response_schema_violation_is_422(make_client: Callable[..., TestClient]) -> None:
    async def create_item(data: RequestData, extensions: Any) -> dict:
        return {"id": "not-a-number", "secret": "leak"}

    client = make_client([
        RouteDefinition("POST", "/items", create_item, schema={"response": {201: ITEM_SCHEMA}}),
    ])
    resp = client.post("/api/items", json={})

    assert resp.status_code == 422
    body = resp.json()
    assert body["error"] == "Response Validation Error"
    assert body["details"]["type"] == "response_validation"
    assert len(body["details"]["errors"]) == 2
    assert "secret" not in resp.text


def test_unserializable_result_is_422(make_client: Callable[..., TestClient]) -> None:
    async def broken(data: RequestData, extensions: Any) -> dict:
        return {"ratio": float("nan")}

    client = make_client([RouteDefinition("GET", "/broken", broken)])
    resp = client.get("/api/broken")

    assert resp.status_code == 422
    assert resp.json()["error"] == "Serialization Error"


def test_missing_field_raised_by_handler(make_client: Callable[..., TestClient]) -> None:
    async def create_user(data: RequestData, extensions: Any) -> dict:
        raise ValueError('"email" is required!')

    client = make_client([RouteDefinition("POST", "/users", create_user)])
    resp = client.post("/api/users", json={})

    assert resp.status_code == 422
    assert resp.json()["details"] == {"type": "missing_field", "field": "email"}


def test_explicit_status_errors(make_client: Callable[..., TestClient]) -> None:
    async def get_user(data: RequestData, extensions: Any) -> dict:
        raise NotFoundError("User not found", details={"user_id": data.params["user_id"]})

    async def forbidden(data: RequestData, extensions: Any) -> dict:
        raise HTTPException(status_code=403, detail="Not yours")

    schema = RouteSchema(params={"type": "object", "properties": {"user_id": {"type": "integer"}}})
    client = make_client([
        RouteDefinition("GET", "/users/{user_id}", get_user, schema=schema),
        RouteDefinition("GET", "/admin", forbidden),
    ])

    missing = client.get("/api/users/9")
    assert missing.status_code == 404
    assert missing.json() == {"error": "NotFound", "reason": "User not found", "details": {"user_id": 9}}

    denied = client.get("/api/admin")
    assert denied.status_code == 403
    assert denied.json() == {"error": "HTTPException", "reason": "Not yours"}


def test_unexpected_error_is_500_without_stack(make_client: Callable[..., TestClient]) -> None:
    async def explode(data: RequestData, extensions: Any) -> dict:
        raise RuntimeError("kaboom")

    client = make_client([RouteDefinition("GET", "/explode", explode)])
    resp = client.get("/api/explode")

    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal Server Error", "reason": "kaboom"}


def test_development_mode_adds_stack(make_client: Callable[..., TestClient]) -> None:
    async def explode(data: RequestData, extensions: Any) -> dict:
        raise RuntimeError("kaboom")

    client = make_client([RouteDefinition("GET", "/explode", explode)], development=True)
    body = client.get("/api/explode").json()

    assert "RuntimeError: kaboom" in body["stack"]

    unknown = client.get("/api/nowhere").json()
    assert "stack" in unknown


def test_unknown_route_goes_through_global_handler(make_client: Callable[..., TestClient]) -> None:
    client = make_client([RouteDefinition("GET", "/items", echo)])

    missing = client.get("/api/unknown")
    assert missing.status_code == 404
    assert missing.json() == {"error": "HTTPException", "reason": "Not Found"}

    wrong_method = client.post("/api/items")
    assert wrong_method.status_code == 405
    assert "GET" in wrong_method.headers["allow"]


def test_prefix_and_colon_params(make_client: Callable[..., TestClient]) -> None:
    client = make_client(
        [RouteDefinition("GET", "/users/:user_id", echo, schema={"params": {"type": "object"}})],
        prefix="/v1/",
    )

    resp = client.get("/v1/users/abc")

    assert resp.status_code == 200
    assert resp.json()["params"] == {"user_id": "abc"}


def test_extensions_are_passed_to_every_handler(make_client: Callable[..., TestClient]) -> None:
    from servicekit import ServiceExtensions

    seen = []
    bundle = ServiceExtensions()

    async def handler(data: RequestData, extensions: Any) -> dict:
        seen.append(extensions)
        return {}

    client = make_client([RouteDefinition("GET", "/a", handler), RouteDefinition("GET", "/b", handler)], extensions=bundle)
    client.get("/api/a")
    client.get("/api/b")

    assert seen == [bundle, bundle]
    assert all(item is bundle for item in seen)


def test_docs_are_served_with_route_schemas(make_client: Callable[..., TestClient]) -> None:
    schema = RouteSchema(
        params={"type": "object", "properties": {"item_id": {"type": "integer"}}},
        query={"type": "object", "required": ["full"], "properties": {"full": {"type": "boolean"}}},
        body={"type": "object"},
        response={200: ITEM_SCHEMA},
    )
    config = RouteConfig(summary="Replace an item", tags=["items"], deprecated=True)
    client = make_client([RouteDefinition("PUT", "/items/{item_id}", echo, schema=schema, config=config)])

    assert client.get("/docs").status_code == 200
    document = client.get("/openapi.json").json()
    operation = document["paths"]["/api/items/{item_id}"]["put"]

    assert operation["summary"] == "Replace an item"
    assert operation["tags"] == ["items"]
    assert operation["deprecated"] is True
    assert {p["name"]: p["in"] for p in operation["parameters"]} == {"item_id": "path", "full": "query"}
    assert operation["requestBody"]["content"]["application/json"]["schema"] == {"type": "object"}
    assert {"200", "400", "500"} <= set(operation["responses"])


def test_docs_can_be_disabled(make_client: Callable[..., TestClient]) -> None:
    client = make_client([RouteDefinition("GET", "/items", echo)], auto_docs=False)

    assert client.get("/docs").status_code == 404
    assert client.get("/openapi.json").status_code == 404
