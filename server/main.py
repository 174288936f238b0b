import sys
import os
import logging
from contextlib import asynccontextmanager

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from server.dependencies import get_coordinator
from server.routers import rescan
from pulse.config import Config

logging.basicConfig(
    level=Config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Only tear down what was actually built
    if get_coordinator.cache_info().currsize:
        await get_coordinator().shutdown()

app = FastAPI(title="Decred Pulse Rescan API", version="1.0.0", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], # In production, restrict to frontend URL
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(rescan.router)

@app.get("/health")
async def health_check():
    return {"status": "ok"}

if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Decred Pulse API server on {Config.HOST}:{Config.PORT}")
    uvicorn.run("server.main:app", host=Config.HOST, port=Config.PORT)
