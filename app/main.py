# Run from project root: uvicorn app.main:app --reload

import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from app.api.handlers import handle_validation_error
from app.api.routes import router
from app.core.config import RATE_LIMIT_CAPACITY, RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SECONDS
from app.core.rate_limiter import FixedWindowRateLimiter

logging.basicConfig(level=logging.INFO)


def create_app() -> FastAPI:
    application = FastAPI(title="Document Chat RAG Backend")
    application.state.rate_limiter = FixedWindowRateLimiter(
        max_requests=RATE_LIMIT_MAX_REQUESTS,
        window_seconds=RATE_LIMIT_WINDOW_SECONDS,
        capacity=RATE_LIMIT_CAPACITY,
    )
    application.add_exception_handler(RequestValidationError, handle_validation_error)
    application.include_router(router)
    return application


app = create_app()


if __name__ == "__main__":
    print("Document chat backend booting...")
