"""FastAPI service exposing the batch skill-extraction jobs and Talent Mining.

Endpoints:
GET  /health                     -> cheap liveness
GET  /ready                      -> readiness (Mongo ping, LLM client counters)
POST /batch/start                -> start a background job for the tenant
POST /batch/{job_id}/pause|resume|cancel
GET  /batch/status               -> latest job snapshot with its log
POST /talent/rank                -> ranked users for a required-skill profile
POST /talent/job-skills          -> required skills for a job position
POST /talent/suggest             -> related skills for a search term

Every /batch and /talent route is tenant-scoped through the X-API-Key header.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)

from . import config
from .db import ping
from .llm import get_llm_client
from .routers_batch import router as batch_router
from .routers_talent import router as talent_router
from .store import SkillStore, get_store


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover
    # Set SKIP_BOOTSTRAP=1 to start without touching Mongo (e.g. offline tests)
    if not os.getenv("SKIP_BOOTSTRAP"):
        try:
            get_store().create_indexes()
        except Exception as e:
            logging.error(f"index bootstrap failed: {e}")
    yield


app = FastAPI(title="SkillMine API", version="0.1.0", lifespan=lifespan)
app.include_router(batch_router)
app.include_router(talent_router)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/live")
def live():
    return health()


@app.get("/ready")
def ready(store: SkillStore = Depends(get_store)):
    llm = {"configured": config.llm_configured()}
    if llm["configured"]:
        llm.update(get_llm_client(config.OPENAI_MODEL_RANK).status())
    if not ping(store.db):
        return JSONResponse(status_code=503, content={"status": "unavailable", "db": False, "llm": llm})
    return {"status": "ready", "db": True, "llm": llm}
