"""FastAPI dependency exposing the running bot to route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from services.bot_runtime import BotRuntime


def get_runtime(request: Request) -> BotRuntime | None:
    """Return the runtime started by the app lifespan, if any."""
    return getattr(request.app.state, "runtime", None)


RuntimeDep = Annotated[BotRuntime | None, Depends(get_runtime)]
