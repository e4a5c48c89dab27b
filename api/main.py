import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from api.deps import get_config, get_session
from api.logging_setup import configure_logging
from api.routes.channels import router as channels_router
from api.routes.groups import router as groups_router
from api.routes.state import router as state_router
from api.ws import router as ws_router
from infrastructure.metrics import get_metrics_response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Attach the mixing session to the serving loop and open the console link."""
    configure_logging()
    session = app.dependency_overrides.get(get_session, get_session)()
    session.start(asyncio.get_running_loop())
    try:
        yield
    finally:
        session.stop()


app = FastAPI(title="Mixer Remote", lifespan=lifespan)

# Browser UI dev servers (Vite and CRA ports, both loopback spellings)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(state_router)
app.include_router(channels_router)
app.include_router(groups_router)
app.include_router(ws_router)


@app.get("/health")
def health() -> dict[str, str]:
    """Return a simple liveness check."""
    return {"status": "ok"}


@app.get("/metrics")
def metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns metrics in Prometheus text exposition format.
    """
    body, content_type = get_metrics_response()
    return Response(content=body, media_type=content_type)


def run() -> None:
    """Console entry point: serve the API with uvicorn on ``PORT``."""
    uvicorn.run(app, host="0.0.0.0", port=get_config().port)
