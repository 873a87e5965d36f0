"""HTTP front end (FastAPI) for the print bridge"""

import contextlib
import logging
import secrets
import typing

import fastapi
import fastapi.concurrency
import fastapi.middleware.cors
import fastapi.responses
import pydantic
import uvicorn

from ok_print_bridge import _config
from ok_print_bridge import _dispatch
from ok_print_bridge import _exceptions
from ok_print_bridge import _link
from ok_print_bridge import _probe

log = logging.getLogger("ok_print_bridge.server")

HTTP_STATUS: dict[type[_exceptions.BridgeException], int] = {
    _exceptions.InvalidEncoding: 400,
    _exceptions.MissingPayload: 400,
    _exceptions.InvalidField: 400,
    _exceptions.Unauthorized: 401,
    _exceptions.PayloadTooLarge: 413,
    _exceptions.NotOpen: 503,
    _exceptions.LinkOpenFailed: 502,
    _exceptions.LinkDisconnected: 502,
    _exceptions.WriteTimeout: 504,
}

Json = dict[str, typing.Any]


def status_for(exc: _exceptions.BridgeException) -> int:
    for cls in type(exc).__mro__:
        if status := HTTP_STATUS.get(cls):
            return status
    return 500


def check_secret(secret: str, *presented: str | None) -> None:
    """Raises Unauthorized unless some header value carries the secret"""

    if not secret:
        return
    accepted = (secret.encode(), f"Bearer {secret}".encode())
    for value in presented:
        if value and any(
            secrets.compare_digest(value.encode(), ok) for ok in accepted
        ):
            return
    raise _exceptions.Unauthorized("Missing or wrong bridge secret")


def create_app(
    config: _config.BridgeConfig,
    dispatcher: _dispatch.CommandDispatcher | None = None,
) -> fastapi.FastAPI:
    if dispatcher is None:
        link = _link.SerialLink(config.serial_path, config.link_options())
        dispatcher = _dispatch.CommandDispatcher(
            link, config.dispatch_options()
        )

    @contextlib.asynccontextmanager
    async def lifespan(app: fastapi.FastAPI):
        if not config.secret:
            log.warning("⚠️ BRIDGE_SECRET not set, API is open to anyone!")
        prober = _probe.LinkProber(
            dispatcher.link,
            config.serial_path,
            config.baud,
            config.probe_options(),
        )
        if config.auto_open:
            prober.start()
        try:
            yield
        finally:
            await fastapi.concurrency.run_in_threadpool(prober.stop)
            await fastapi.concurrency.run_in_threadpool(dispatcher.close)

    app = fastapi.FastAPI(title="ok-print-bridge", lifespan=lifespan)
    app.state.dispatcher = dispatcher
    app.add_middleware(
        fastapi.middleware.cors.CORSMiddleware,
        allow_origins=list(config.allowed_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(_exceptions.BridgeException)
    async def bridge_error(
        request: fastapi.Request, exc: _exceptions.BridgeException
    ) -> fastapi.responses.JSONResponse:
        status = status_for(exc)
        level = logging.WARNING if status < 500 else logging.ERROR
        log.log(level, "%s %s: %s", request.method, request.url.path, exc)
        return fastapi.responses.JSONResponse(
            {"ok": False, "error": exc.kind, "message": str(exc)},
            status_code=status,
        )

    def authorized(
        x_bridge_secret: typing.Annotated[str | None, fastapi.Header()] = None,
        authorization: typing.Annotated[str | None, fastapi.Header()] = None,
    ) -> None:
        check_secret(config.secret, x_bridge_secret, authorization)

    auth = [fastapi.Depends(authorized)]

    def ok(result: pydantic.BaseModel | None = None) -> Json:
        fields = result.model_dump(by_alias=True) if result else {}
        return {"ok": True, **fields}

    @app.get("/health")
    def health() -> Json:
        result = dispatcher.health()
        return {
            **ok(result),
            "serialPath": result.path,
            "serialOpen": result.open,
        }

    @app.get("/list-ports")
    def list_ports() -> Json:
        return {"ok": True, "ports": dispatcher.list_ports()}

    @app.post("/open", dependencies=auth)
    def open_link(cmd: _dispatch.OpenCommand | None = None) -> Json:
        return ok(dispatcher.open(cmd or _dispatch.OpenCommand()))

    @app.post("/close", dependencies=auth)
    def close_link() -> Json:
        dispatcher.close()
        return ok()

    @app.post("/write-hex", dependencies=auth)
    def write_hex(cmd: _dispatch.HexCommand | None = None) -> Json:
        return ok(dispatcher.write_hex(cmd or _dispatch.HexCommand()))

    @app.post("/write-base64", dependencies=auth)
    def write_base64(cmd: _dispatch.Base64Command | None = None) -> Json:
        return ok(dispatcher.write_base64(cmd or _dispatch.Base64Command()))

    @app.post("/print-voucher", dependencies=auth)
    def print_voucher(cmd: _dispatch.VoucherCommand | None = None) -> Json:
        return ok(dispatcher.print_voucher(cmd or _dispatch.VoucherCommand()))

    @app.post("/write-binary", dependencies=auth)
    async def write_binary(request: fastapi.Request) -> Json:
        limit = config.max_binary_bytes
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > limit:
            message = f"Binary body is {declared}b (max {limit}b)"
            raise _exceptions.PayloadTooLarge(message)
        data = await request.body()
        result = await fastapi.concurrency.run_in_threadpool(
            dispatcher.write_binary, data
        )
        return ok(result)

    return app


def serve(config: _config.BridgeConfig) -> None:
    """Runs the bridge until interrupted"""

    app = create_app(config)
    log.info(
        "🖨️ Listening http://%s:%d -> %s @ %d baud",
        config.host,
        config.port,
        config.serial_path,
        config.baud,
    )
    uvicorn.run(app, host=config.host, port=config.port, log_config=None)
