from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.v1.api import api_router
from core.config import get_settings
from core.error_handler import global_exception_handler, setup_logging
from core.middleware import CorrelationIdMiddleware, ExceptionNormalizationMiddleware
from services.bot_runtime import BotRuntime


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Run the bot for the lifetime of the HTTP host."""
    setup_logging()
    runtime = BotRuntime(get_settings())
    app.state.runtime = runtime
    try:
        await runtime.start()
        yield
    finally:
        await runtime.stop()
        app.state.runtime = None


app = FastAPI(
    title="Topic Retention Bot",
    description="Auto-deletes Telegram topic messages by age or count",
    version="0.1.0",
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(StarletteHTTPException, global_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, global_exception_handler)  # type: ignore[arg-type]

# Last added runs first: correlation id is set before errors are normalized
app.add_middleware(ExceptionNormalizationMiddleware)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(api_router, prefix="/api/v1")


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("main:app", host=settings.HTTP_HOST, port=settings.HTTP_PORT)


if __name__ == "__main__":
    run()
