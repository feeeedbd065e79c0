# =============================================================================
# FastAPI Application — Budget 2025 Report Assistant
# =============================================================================
#
# Startup loads the corpus exactly once into a CorpusIndex stored on
# app.state. A CorpusLoadError aborts startup: the service never runs with
# an empty index that looks ready.
#
# RUN:
#   uvicorn budget_assistant.main:app --port 10000
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request

from budget_assistant.api import ask
from budget_assistant.config import Settings, get_settings, settings
from budget_assistant.models.responses import HealthResponse
from budget_assistant.services.corpus import CorpusIndex

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    level = getattr(logging, (settings.log_level or "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    index = CorpusIndex()
    app.state.corpus_index = index

    # CorpusLoadError propagates and stops the server
    await index.load(settings.corpus_path)
    logger.info("%s v%s ready", settings.app_name, settings.app_version)
    yield
    logger.info("%s shutting down", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)
app.include_router(ask.router)


@app.get("/health", response_model=HealthResponse)
async def health(
    request: Request,
    config: Settings = Depends(get_settings),
) -> HealthResponse:
    index: CorpusIndex | None = getattr(request.app.state, "corpus_index", None)
    ready = index is not None and index.is_ready
    return HealthResponse(
        status="ok" if ready else "starting",
        version=config.app_version,
        service=config.app_name,
        corpus_state=index.state.value if index is not None else "not_loaded",
        chunk_count=len(index.chunks) if ready else None,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("budget_assistant.main:app", host="0.0.0.0", port=10000)
