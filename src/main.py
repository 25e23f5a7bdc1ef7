"""Entry point. Run with: python -m src.main"""
import uvicorn

from src.api.v2.app import app  # noqa: F401
from src.core.config import settings

if __name__ == "__main__":
    uvicorn.run("src.main:app", host=settings.host, port=settings.port)
