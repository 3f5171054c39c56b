"""ASGI entry point: `uvicorn src.pressure.asgi:app`."""
from src.pressure.pressure_service import create_app

app = create_app()
