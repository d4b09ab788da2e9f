# routes.py
from fastapi import FastAPI
from controller.bulk_evaluation_controller import bulk_router


def register_routes(app: FastAPI) -> None:
    """Register & Access control controllers here."""
    app.include_router(bulk_router)
