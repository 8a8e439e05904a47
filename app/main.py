import uvicorn

from app.core.app_factory import create_app

app = create_app()


if __name__ == "__main__":
    # Single worker: rate limit counters live in this process only
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, workers=1)
