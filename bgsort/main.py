import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bgsort.api.routes import bgsort_error_handler, router
from bgsort.core.config import settings
from bgsort.core.errors import BgsortError
from bgsort.services.models import load_models

app = FastAPI(title=settings.app_name)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)
app.add_exception_handler(BgsortError, bgsort_error_handler)


@app.on_event("startup")
def startup_event():
    logging.basicConfig(level=settings.log_level.upper())
    Path(settings.storage_root).mkdir(parents=True, exist_ok=True)
    Path(settings.temp_dir).mkdir(parents=True, exist_ok=True)
    app.state.models = load_models()


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


app.include_router(router)
