"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from pathlib import Path
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from dungeon_engine.config import get_settings
from dungeon_engine.core.monster_data import MonsterBook, set_monster_book
from dungeon_engine.middleware.error_handler import setup_error_handlers
from dungeon_engine.services.dungeon_loader import get_dungeon_store
from dungeon_engine.services.skill_oracle import TableSkillOracle, set_skill_oracle

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("dungeon_engine")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events - startup and shutdown."""
    # Startup: load card and skill tables, kick off the one dungeon data fetch
    if settings.MONSTER_DATA_PATH:
        set_monster_book(MonsterBook.load_from_file(Path(settings.MONSTER_DATA_PATH)))
    if settings.SKILL_DATA_PATH:
        set_skill_oracle(TableSkillOracle.load_from_file(Path(settings.SKILL_DATA_PATH)))
    get_dungeon_store().start()
    logger.info("[Startup] Dungeon engine ready")

    yield  # Application runs here

    logger.info("[Shutdown] Dungeon engine stopped")


app = FastAPI(
    title="Dungeon Encounter Engine",
    description="Encounter editor and enemy behavior engine for a puzzle RPG",
    version="0.1.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.debug(f"[Request] {request.method} {request.url.path}")
    response = await call_next(request)
    logger.debug(f"[Response] {request.method} {request.url.path} -> {response.status_code}")
    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_error_handlers(app, debug=settings.DEBUG)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "online", "service": "Dungeon Encounter Engine", "version": "0.1.0"}


@app.get("/health")
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "dungeon_data_loaded": get_dungeon_store().loaded,
        "debug_mode": settings.DEBUG,
    }


# Routes
from dungeon_engine.api.routes import dungeon  # noqa: E402
app.include_router(dungeon.router, prefix="/api/dungeon", tags=["dungeon"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("dungeon_engine.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
