from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from zoneclash import models  # noqa: F401  (register tables on Base)
from zoneclash.config import get_settings
from zoneclash.database import Base, engine
from zoneclash.api import actors, attacks, zones

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(
    title="ZoneClash API",
    description="Authoritative core of a location-based territory capture game",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(zones.router)
app.include_router(attacks.router)
app.include_router(actors.router)


@app.get("/")
def root():
    return {"message": "ZoneClash API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


def run():
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
