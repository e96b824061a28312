# main.py
"""
Point d'entrée de l'API Pulse.
Enregistre les modules via leurs routers et pilote le scheduler.

Architecture : modules verticaux quasi-autonomes + engine transversal.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.core.config import settings

from app.modules.pulse.router    import router as pulse_router
from app.modules.pulse.scheduler import start_scheduler, stop_scheduler

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.PULSE_SCHEDULER_ENABLED:
        start_scheduler()
    else:
        logger.info("Scheduler pulse désactivé (PULSE_SCHEDULER_ENABLED=false)")
    yield
    stop_scheduler()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(pulse_router)


@app.get("/health")
async def health():
    return {"status": "ok", "version": "1.0.0"}
