import uvicorn

from .config import settings


def main() -> None:
    uvicorn.run(
        "rendezvous.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    main()
