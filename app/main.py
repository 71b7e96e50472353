# FILE: app/main.py
# ==============================================================================
# Application entry point: logging, table creation, the scheduler (leader
# process only) and the HTTP routes.
# ==============================================================================
import logging
import sys
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import models
from .database import async_engine
from .errors import register_error_handlers
from .routes import router
from .scheduled_tasks import scheduler, register_jobs

# --- Configure Logging ---
handler = logging.StreamHandler(sys.stdout)
handler.flush = sys.stdout.flush
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
    handlers=[handler]
)


# --- Application Lifespan (Startup/Shutdown) ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.info("LIFESPAN: Application startup...")

    async with async_engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)

    if os.getenv("RUN_SCHEDULER") == "true":
        register_jobs()
        scheduler.start()
        logging.info("LIFESPAN: APScheduler started in leader process.")

    yield

    logging.info("LIFESPAN: Application shutdown...")
    if scheduler.running:
        scheduler.shutdown(wait=False)
    await async_engine.dispose()
    logging.info("LIFESPAN: All services shut down gracefully.")


# --- FastAPI App Initialization ---
app = FastAPI(title="NaOdludzie API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)
register_error_handlers(app)
app.include_router(router)


@app.get("/")
async def health_check():
    return {"status": "ok", "message": "NaOdludzie API is alive!"}
