"""
VoiceQuiz relay application

Issues ephemeral realtime credentials and proxies prompt completions so the
OpenAI API key stays on the server.
"""

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from voicequiz.api import health, prompts, token
from voicequiz.core.config import settings
from voicequiz.core.logging import configure_logging, get_logger
from voicequiz.core.rate_limit import limiter, rate_limit_exceeded_handler
from voicequiz.services.openai_relay_service import RelayNotConfiguredError, UpstreamError

# Configure structured logging
configure_logging()
logger = get_logger(__name__)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    logger.info("request_validation_failed", path=request.url.path, fields=fields)
    return JSONResponse(
        status_code=400,
        content={"error": f"Invalid request fields: {', '.join(fields)}" if fields else "Invalid request body"},
    )


async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    logger.error("openai_upstream_error", path=request.url.path, status_code=exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "OpenAI API failed", "details": exc.details},
    )


async def not_configured_handler(request: Request, exc: RelayNotConfiguredError) -> JSONResponse:
    logger.error("relay_not_configured", path=request.url.path)
    return JSONResponse(status_code=503, content={"error": "Relay is not configured"})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("relay_unhandled_error", path=request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        description="VoiceQuiz relay: realtime credentials and prompt completions.",
    )

    # Add rate limiter to app state
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(UpstreamError, upstream_error_handler)
    app.add_exception_handler(RelayNotConfiguredError, not_configured_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(health.router, tags=["health"])
    app.include_router(token.router)
    app.include_router(prompts.router)

    @app.on_event("startup")
    async def startup_event():
        logger.info(
            "application_startup",
            app_name=settings.APP_NAME,
            version=settings.APP_VERSION,
            environment=settings.ENVIRONMENT,
            openai_configured=bool(settings.OPENAI_API_KEY),
        )

    return app


app = create_app()


def run() -> None:
    uvicorn.run(
        "voicequiz.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    run()
