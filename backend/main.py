import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from config import settings

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🌴 Costa Mafia backend starting up...")
    if not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY not set, narration will use canned lines")
    yield
    logger.info("Backend shutting down.")


app = FastAPI(
    title="Costa Mafia",
    version="0.1.0",
    description="Pass-the-phone mafia party game with costeño narration powered by Gemini",
    lifespan=lifespan,
)

_origins = list(settings.allowed_origins)
if settings.extra_origin:
    _origins.append(settings.extra_origin)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.get("/health")
async def health_check():
    from services.session_store import get_session_store
    return {
        "status": "ok",
        "service": "costa-mafia",
        "version": "0.1.0",
        "sessions": get_session_store().count(),
        "narration": "gemini" if settings.gemini_api_key else "canned",
    }


from routers.game_router import router as game_router
from routers.ws_router import router as ws_router

app.include_router(game_router, prefix="/api")
app.include_router(ws_router)


# Serve the compiled front-end when it sits next to the backend
_frontend_dist = os.path.abspath(
    os.path.join(os.path.dirname(__file__), "..", "frontend", "dist")
)
if os.path.isdir(_frontend_dist):
    app.mount("/", StaticFiles(directory=_frontend_dist, html=True), name="static")
    logger.info(f"Serving frontend from {_frontend_dist}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
