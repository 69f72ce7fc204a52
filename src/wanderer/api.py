"""FastAPI REST backend for walk planning and story generation."""
from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wanderer.deps import get_cache, key_totals
from wanderer.routers import routes, stories

log = logging.getLogger(__name__)

app = FastAPI(title="Wanderer", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(routes.router)
app.include_router(stories.router)


@app.get("/health")
def health():
    return {
        "status": "ok",
        "redis": get_cache().ping(),
        "keys": key_totals(),
    }
