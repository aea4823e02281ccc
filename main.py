"""
Entry point for the quiz-elo-sync API service.

Run with:
    uvicorn elosync.api.main:app --reload --port 3001
    python main.py
"""
import uvicorn

from config import get_settings

settings = get_settings()

if __name__ == "__main__":
    uvicorn.run(
        "elosync.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
