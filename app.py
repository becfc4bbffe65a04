import asyncio
import os
from contextlib import asynccontextmanager
from typing import Iterable, Optional

from fastapi import FastAPI

from docsmith import __version__
from docsmith.config import Settings
from docsmith.lifecycle import RequestFinalizerMiddleware
from docsmith.pipeline import ConversionPipeline, ConversionRoute, build_routes
from docsmith.router import create_router
from docsmith.utils.error_handling import register_exception_handlers
from docsmith.utils.logging_config import get_logger
from docsmith.workspace import WorkspaceManager

logger = get_logger("docsmith.app")


def create_app(
    settings: Optional[Settings] = None,
    routes: Optional[Iterable[ConversionRoute]] = None,
) -> FastAPI:
    """
    Build the docsmith application.

    Args:
        settings: Service configuration, read from the environment when omitted
        routes: Conversion route table, built from ``settings`` when omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings or Settings.from_env()
    workspaces = WorkspaceManager(settings.temp_dir)
    # Nothing a live request owns outlives its conversion timeout by this much
    stale_after = settings.converter_timeout * 2
    pipeline = ConversionPipeline(
        routes if routes is not None else build_routes(settings),
        workspaces,
        max_upload_bytes=settings.max_upload_bytes,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Remove stale artifacts at startup and shutdown, leaving other live processes' files alone."""
        await asyncio.to_thread(workspaces.ensure_directory)
        await asyncio.to_thread(workspaces.purge, stale_after)
        logger.info(f"docsmith {__version__} using temp directory {settings.temp_dir}")
        try:
            yield
        finally:
            await asyncio.to_thread(workspaces.purge, stale_after)

    app = FastAPI(title="docsmith", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.pipeline = pipeline

    register_exception_handlers(app)
    app.add_middleware(RequestFinalizerMiddleware)
    app.include_router(create_router(pipeline))
    return app


def run() -> None:
    """Run the service with uvicorn. HOST and PORT override the bind address."""
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "3000"))
    uvicorn.run("app:app", host=host, port=port)


app = create_app()


if __name__ == "__main__":
    run()
