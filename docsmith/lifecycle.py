"""
Per-request finalizers.

``RequestFinalizerMiddleware`` is a pure ASGI middleware. It stores a
``RequestFinalizers`` registry in the request scope's state, calls the
downstream application, and runs every registered finalizer once the
application has returned (the last body chunk has been handed to the
server) or aborted with an exception or a cancellation. Finalizers run in a
shielded cancel scope so a client disconnect cannot interrupt them.
"""

from typing import Any, Awaitable, Callable, List, Optional, Tuple

import anyio
from starlette.requests import Request
from starlette.types import ASGIApp, Receive, Scope, Send

from .utils.logging_config import get_logger

logger = get_logger(__name__)

STATE_KEY = "finalizers"

Finalizer = Callable[[], Awaitable[Any]]


class RequestFinalizers:
    """Callbacks bound to the completion of a single request."""

    def __init__(self):
        self._callbacks: List[Tuple[str, Finalizer]] = []
        self._finished = False

    def register(self, callback: Finalizer, name: Optional[str] = None) -> None:
        if self._finished:
            raise RuntimeError("Request already finalized")
        self._callbacks.append((name or getattr(callback, "__name__", "finalizer"), callback))

    @property
    def pending(self) -> int:
        return len(self._callbacks)

    @property
    def finished(self) -> bool:
        return self._finished

    async def run(self) -> None:
        """
        Run registered callbacks in reverse registration order, at most once.

        A failing callback is logged and does not stop the others; the
        response has already been sent at this point.
        """
        if self._finished:
            return
        self._finished = True

        callbacks, self._callbacks = self._callbacks, []
        for name, callback in reversed(callbacks):
            try:
                await callback()
            except Exception as e:
                logger.warning(f"Request finalizer {name} failed: {e}")


class RequestFinalizerMiddleware:
    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        finalizers = RequestFinalizers()
        scope.setdefault("state", {})[STATE_KEY] = finalizers
        try:
            await self.app(scope, receive, send)
        finally:
            with anyio.CancelScope(shield=True):
                await finalizers.run()


def get_finalizers(request: Request) -> Optional[RequestFinalizers]:
    """The request's finalizer registry, or None when the middleware is not installed."""
    return getattr(request.state, STATE_KEY, None)
