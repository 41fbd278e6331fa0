from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi import Request
from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from starlette.exceptions import HTTPException as StarletteHTTPException

import tachi.settings
import tachi.state
from tachi.api import responses
from tachi.logging import Ansi
from tachi.logging import configure_logging
from tachi.logging import log


@contextlib.asynccontextmanager
async def lifespan(asgi_app: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    log("Starting up.", Ansi.LCYAN)

    await tachi.state.services.connect()
    try:
        yield
    finally:
        await tachi.state.services.disconnect()
        log("Shut down.", Ansi.LCYAN)


def init_exception_handlers(asgi_app: FastAPI) -> None:
    @asgi_app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request,
        exc: RequestValidationError,
    ) -> Response:
        """Wrapper around 422 validation errors to print out info for devs."""
        log(f"Validation error on {request.url.path}: {exc.errors()}", Ansi.LRED)

        return responses.failure(
            message="Invalid request.",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @asgi_app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request,
        exc: StarletteHTTPException,
    ) -> Response:
        return responses.failure(
            message=str(exc.detail),
            status_code=exc.status_code,
            headers=exc.headers,
        )


def init_routes(asgi_app: FastAPI) -> None:
    from tachi.api.ir import ir_router
    from tachi.api.v1 import apiv1_router

    asgi_app.include_router(apiv1_router)
    asgi_app.include_router(ir_router)


def init_api() -> FastAPI:
    """Create & initialize our app."""
    asgi_app = FastAPI(
        lifespan=lifespan,
        openapi_url="/openapi.json" if tachi.settings.DEVELOPER_MODE else None,
        docs_url="/docs" if tachi.settings.DEVELOPER_MODE else None,
        redoc_url=None,
    )

    init_exception_handlers(asgi_app)
    init_routes(asgi_app)

    return asgi_app


asgi_app = init_api()
