from fastapi import FastAPI

from backend.app.api.exception_handlers import setup_exception_handlers
from backend.app.api.v1.router import router as v1_router
from backend.app.core.config import settings, setup_logging

setup_logging()

app = FastAPI(title=settings.APP_NAME, version="0.1.0")
setup_exception_handlers(app)
app.include_router(v1_router, prefix="/v1")
