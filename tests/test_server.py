from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import FakeRequest, FakeResponse, FakeTransport
from covenant import (
    Config,
    Context,
    MiddlewareContext,
    Server,
    WebSocketBehavior,
    create_contract,
    create_endpoint,
    create_router,
    endpoint,
)
from covenant.errors import HttpError

get_item = create_contract(
    method="get",
    path="/items/:id",
    inputs={"params": {"id": int}},
    output={200: {"id": int, "owner": str}},
    errors=["ERR_REF_ID_NOT_FOUND"],
)

create_item = create_contract(
    method="post",
    path="/items",
    inputs={"body": {"name": str}},
    output={201: {"id": int, "name": str}},
    content_type="json",
)


async def owner_middleware(ctx: MiddlewareContext) -> dict:
    return {"owner": ctx.headers.get("x-user", "anonymous")}


def payload(response) -> dict:
    return json.loads(response.body)


@pytest.mark.asyncio()
async def test_pipeline_runs_middlewares_then_handler(
    server: Server, transport: FakeTransport
) -> None:
    @endpoint(get_item).use(owner_middleware).handler
    async def read_item(ctx: Context) -> dict:
        return {"id": int(ctx.params["id"]), "owner": ctx.data["owner"]}

    server.register(read_item)
    response = await transport.dispatch(
        "get",
        "/items/:id",
        FakeRequest(url="/items/7", params=["7"], headers={"X-User": "ann"}),
    )

    assert response.status == 200
    assert payload(response) == {"id": 7, "owner": "ann"}
    assert response.headers["content-type"] == "application/json"


@pytest.mark.asyncio()
async def test_status_header_body_written_once_inside_cork(
    server: Server, transport: FakeTransport
) -> None:
    async def handler(ctx: Context) -> dict:
        return {"id": 1, "owner": "x"}

    server.register(create_endpoint(contract=get_item, handler=handler))
    response = await transport.dispatch(
        "get", "/items/:id", FakeRequest(params=["1"])
    )

    kinds = [write[0] for write in response.writes]
    assert kinds.count("status") == 1
    assert kinds.count("end") == 1
    assert kinds[-1] == "end"
    assert response.writes[0] == ("status", 200, True)


@pytest.mark.asyncio()
async def test_undeclared_http_error_keeps_its_status(
    server: Server, transport: FakeTransport
) -> None:
    contract = create_contract(method="get", path="/refs/:id", output={200: {}})

    async def handler(ctx: Context) -> dict:
        raise HttpError(404, "ERR_REF_ID_NOT_FOUND", "ref not found")

    server.register(create_endpoint(contract=contract, handler=handler))
    response = await transport.dispatch("get", "/refs/:id", FakeRequest(params=["1"]))

    assert response.status == 404
    assert payload(response) == {
        "code": "ERR_REF_ID_NOT_FOUND",
        "message": "ref not found",
    }


@pytest.mark.asyncio()
async def test_ctx_error_uses_the_declared_entry(
    server: Server, transport: FakeTransport
) -> None:
    async def handler(ctx: Context) -> dict:
        ctx.error("ERR_REF_ID_NOT_FOUND", "no item")

    server.register(create_endpoint(contract=get_item, handler=handler))
    response = await transport.dispatch("get", "/items/:id", FakeRequest(params=["5"]))

    assert response.status == 404
    assert payload(response) == {"code": "ERR_REF_ID_NOT_FOUND", "message": "no item"}


@pytest.mark.asyncio()
async def test_unexpected_exception_becomes_internal_error(
    server: Server, transport: FakeTransport
) -> None:
    async def handler(ctx: Context) -> dict:
        raise RuntimeError("database is down")

    server.register(create_endpoint(contract=get_item, handler=handler))
    response = await transport.dispatch("get", "/items/:id", FakeRequest(params=["5"]))

    assert response.status == 500
    assert payload(response) == {
        "code": "ERR_INTERNAL_SERVER_ERROR",
        "message": "Internal server error",
    }


@pytest.mark.asyncio()
async def test_middleware_failure_skips_the_handler(
    server: Server, transport: FakeTransport
) -> None:
    called = False

    async def deny(ctx: MiddlewareContext) -> dict:
        raise HttpError.of("UNAUTHORIZED", "token required")

    async def handler(ctx: Context) -> dict:
        nonlocal called
        called = True
        return {"id": 1, "owner": "x"}

    server.register(
        create_endpoint(contract=get_item, handler=handler, middlewares=[deny])
    )
    response = await transport.dispatch("get", "/items/:id", FakeRequest(params=["1"]))

    assert not called
    assert response.status == 401
    assert payload(response)["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio()
async def test_request_validation_error(server: Server, transport: FakeTransport) -> None:
    async def handler(ctx: Context) -> dict:
        return {"id": 1, "owner": "x"}

    server.register(create_endpoint(contract=get_item, handler=handler))
    response = await transport.dispatch(
        "get", "/items/:id", FakeRequest(params=["not-a-number"])
    )

    assert response.status == 402
    assert payload(response)["code"] == "ERR_VALIDATION_PARAMS"


@pytest.mark.asyncio()
async def test_request_validation_can_be_disabled(transport: FakeTransport) -> None:
    config = Config(VALIDATE_REQUEST=False, _env_file=None)
    server = Server(config, transport=transport)

    async def handler(ctx: Context) -> dict:
        return {"id": 1, "owner": ctx.params["id"]}

    server.register(create_endpoint(contract=get_item, handler=handler))
    response = await transport.dispatch(
        "get", "/items/:id", FakeRequest(params=["not-a-number"])
    )
    server.close()

    assert response.status == 200
    assert payload(response) == {"id": 1, "owner": "not-a-number"}


@pytest.mark.asyncio()
async def test_json_body_is_decoded_and_validated(
    server: Server, transport: FakeTransport
) -> None:
    async def handler(ctx: Context) -> dict:
        body = await ctx.body()
        return {"id": 10, "name": body["name"]}

    server.register(create_endpoint(contract=create_item, handler=handler))

    created = await transport.dispatch(
        "post",
        "/items",
        FakeRequest(
            "POST", headers={"content-type": "application/json"}, chunks=[b'{"name": "lamp"}']
        ),
    )
    assert created.status == 201
    assert payload(created) == {"id": 10, "name": "lamp"}

    malformed = await transport.dispatch(
        "post",
        "/items",
        FakeRequest("POST", headers={"content-type": "application/json"}, chunks=[b"{"]),
    )
    assert malformed.status == 400
    assert payload(malformed)["code"] == "ERR_MALFORMED_BODY"

    wrong_type = await transport.dispatch(
        "post",
        "/items",
        FakeRequest(
            "POST",
            headers={"content-type": "application/x-www-form-urlencoded"},
            chunks=[b"name=lamp"],
        ),
    )
    assert wrong_type.status == 400
    assert payload(wrong_type)["code"] == "ERR_INVALID_CONTENT_TYPE"


@pytest.mark.asyncio()
async def test_malformed_body_stays_400_next_to_a_declared_400_code(
    server: Server, transport: FakeTransport
) -> None:
    contract = create_contract(
        method="post",
        path="/offers",
        inputs={"body": {"offer_id": str}},
        output={200: {"offer_id": str}},
        errors=["ERR_INVALID_OFFER_ID"],
        content_type="json",
    )

    async def handler(ctx: Context) -> dict:
        return await ctx.body()

    server.register(create_endpoint(contract=contract, handler=handler))

    malformed = await transport.dispatch(
        "post",
        "/offers",
        FakeRequest("POST", headers={"content-type": "application/json"}, chunks=[b"{"]),
    )
    assert malformed.status == 400
    assert payload(malformed)["code"] == "ERR_MALFORMED_BODY"

    wrong_type = await transport.dispatch(
        "post",
        "/offers",
        FakeRequest("POST", headers={"content-type": "text/plain"}, chunks=[b"x"]),
    )
    assert wrong_type.status == 400
    assert payload(wrong_type)["code"] == "ERR_INVALID_CONTENT_TYPE"

    invalid = await transport.dispatch(
        "post",
        "/offers",
        FakeRequest(
            "POST", headers={"content-type": "application/json"}, chunks=[b"{}"]
        ),
    )
    assert invalid.status == 402
    assert payload(invalid)["code"] == "ERR_VALIDATION_BODY"


@pytest.mark.asyncio()
async def test_manual_response_is_kept(server: Server, transport: FakeTransport) -> None:
    contract = create_contract(method="get", path="/report", output={200: {}})

    async def handler(ctx: Context) -> None:
        ctx.status(200).header("content-type", "text/csv").end("a,b\n1,2\n")

    server.register(create_endpoint(contract=contract, handler=handler))
    response = await transport.dispatch("get", "/report", FakeRequest())

    assert response.status == 200
    assert response.headers["content-type"] == "text/csv"
    assert response.body == b"a,b\n1,2\n"


@pytest.mark.asyncio()
async def test_file_response_and_missing_file(
    server: Server, transport: FakeTransport, tmp_path: Path
) -> None:
    (tmp_path / "logo.png").write_bytes(b"\x89PNG")
    contract = create_contract(method="get", path="/static/:name", output={200: {}})

    async def handler(ctx: Context) -> Context:
        return await ctx.file(tmp_path / ctx.params["name"])

    server.register(create_endpoint(contract=contract, handler=handler))

    found = await transport.dispatch(
        "get", "/static/:name", FakeRequest(params=["logo.png"])
    )
    assert found.status == 200
    assert found.headers["content-type"] == "image/png"
    assert found.body == b"\x89PNG"

    missing = await transport.dispatch(
        "get", "/static/:name", FakeRequest(params=["nope.txt"])
    )
    assert missing.status == 404
    assert missing.body == b"Not found"


def test_ws_registers_behavior_on_the_transport(
    server: Server, transport: FakeTransport
) -> None:
    behavior = WebSocketBehavior(message=lambda ws, data: None)

    assert server.ws("/chat/:room", behavior) is server
    assert transport.sockets["/chat/:room"] is behavior


@pytest.mark.asyncio()
async def test_abort_before_handler_completes_writes_nothing(
    server: Server, transport: FakeTransport
) -> None:
    contract = create_contract(method="get", path="/slow", output={200: {}})
    response_holder: dict = {}

    async def handler(ctx: Context) -> dict:
        response_holder["response"].abort()
        return {}

    server.register(create_endpoint(contract=contract, handler=handler))

    response = FakeResponse()
    response_holder["response"] = response
    await transport.routes[("get", "/slow")](response, FakeRequest())

    assert response.writes == []


@pytest.mark.asyncio()
async def test_abort_during_body_read_writes_nothing(
    server: Server, transport: FakeTransport
) -> None:
    async def handler(ctx: Context) -> dict:
        await ctx.body()
        return {"id": 1, "name": "x"}

    server.register(create_endpoint(contract=create_item, handler=handler))
    response = await transport.dispatch(
        "post",
        "/items",
        FakeRequest(
            "POST", headers={"content-type": "application/json"}, abort_on_read=True
        ),
    )

    assert response.writes == []


@pytest.mark.asyncio()
async def test_router_prefixes_path_and_prepends_middlewares(
    server: Server, transport: FakeTransport
) -> None:
    order: list[str] = []

    async def router_mw(ctx: MiddlewareContext) -> dict:
        order.append("router")
        return {"owner": "router"}

    async def endpoint_mw(ctx: MiddlewareContext) -> None:
        order.append("endpoint")

    router = create_router().middlewares([router_mw]).base("/v1").build()

    async def handler(ctx: Context) -> dict:
        return {"id": 3, "owner": ctx.data["owner"]}

    item = endpoint(get_item).router(router).use(endpoint_mw).handler(handler)
    server.register(item)

    assert ("get", "/v1/items/:id") in transport.routes
    response = await transport.dispatch("get", "/v1/items/:id", FakeRequest(params=["3"]))

    assert order == ["router", "endpoint"]
    assert payload(response) == {"id": 3, "owner": "router"}


@pytest.mark.asyncio()
async def test_router_base_placeholders_bind_before_contract_params(
    server: Server, transport: FakeTransport
) -> None:
    contract = create_contract(
        method="get",
        path="/users/:id",
        inputs={"params": {"id": int}},
        output={200: {"org": str, "id": str}},
    )
    router = create_router().base("/orgs/:org").build()

    async def handler(ctx: Context) -> dict:
        return dict(ctx.params)

    server.register(endpoint(contract).router(router).handler(handler))
    response = await transport.dispatch(
        "get",
        "/orgs/:org/users/:id",
        FakeRequest(url="/orgs/acme/users/42", params=["acme", "42"]),
    )

    assert response.status == 200
    assert payload(response) == {"org": "acme", "id": "42"}


@pytest.mark.asyncio()
async def test_listen_reports_bind_failure(config: Config) -> None:
    server = Server(config, transport=FakeTransport(bind_ok=False))
    called = False

    def on_listen() -> None:
        nonlocal called
        called = True

    assert await server.listen(9000, on_listen) is False
    assert not called
    server.close()


@pytest.mark.asyncio()
async def test_listen_uses_configured_port(config: Config) -> None:
    transport = FakeTransport()
    server = Server(config, transport=transport)

    assert await server.listen() is True
    assert transport.listened_on == config.PORT
    server.close()
