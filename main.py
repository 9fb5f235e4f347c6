from __future__ import annotations

import logging

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might need env vars
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes.manuals import router as manuals_router
from services.config import get_settings


logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Change Manual Service")

# Allow any origin for the local desktop front-end.
# This should be tightened for production.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(manuals_router)


@app.get("/")
async def root():
    return {"status": "ok"}
