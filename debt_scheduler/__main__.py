import uvicorn

from debt_scheduler.config import settings


if __name__ == "__main__":
    uvicorn.run(
        "debt_scheduler.main:app",
        host="0.0.0.0",
        port=settings.HTTP_PORT,
        log_level=(settings.LOG_LEVEL or "INFO").lower(),
    )
