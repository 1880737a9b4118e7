from fastapi import FastAPI

from .transitions import router as transitions_router
from .work_items import router as work_items_router


def register_routes(app: FastAPI):
    app.include_router(work_items_router, prefix="/v1")
    app.include_router(transitions_router, prefix="/v1")
