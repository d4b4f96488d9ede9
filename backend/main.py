"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.config import settings
from backend.database import create_db_and_tables
from backend.exceptions import ErrorCode, PersistenceError, PortfolioError
from backend.utils.logging import setup_logging
from backend.api import (
    break_even,
    commissions,
    custody,
    instruments,
    portfolio,
    quotes,
    sell_analysis,
    system,
    trades,
    uva,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()

    from backend.engine.scheduler import start_scheduler, stop_scheduler
    if settings.scheduler_enabled:
        start_scheduler()

    # Start Telegram bot if configured
    telegram_bot = None
    if settings.telegram_bot_token:
        from backend.services.telegram_bot import init_bot
        telegram_bot = init_bot()
        telegram_bot.start()

    yield

    if telegram_bot:
        telegram_bot.stop()
    stop_scheduler()


app = FastAPI(
    title="CEDEAR Portfolio",
    description="CEDEAR portfolio tracking with broker commissions, custody fees and sell analysis",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PortfolioError)
async def portfolio_error_handler(request: Request, exc: PortfolioError):
    payload = exc.to_error_payload()
    if isinstance(exc, PersistenceError):
        logger.error(f"{request.method} {request.url.path}: {exc.message} {exc.details}", exc_info=exc)
        if not settings.debug:
            payload["details"] = {}
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code.value}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": payload})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.VALIDATION_ERROR.value,
                "message": "Request validation failed",
                "details": {"errors": jsonable_encoder(exc.errors())},
            },
        },
    )


# Mount routers
app.include_router(instruments.router)
app.include_router(trades.router)
app.include_router(portfolio.router)
app.include_router(quotes.router)
app.include_router(commissions.router)
app.include_router(custody.router)
app.include_router(break_even.router)
app.include_router(sell_analysis.router)
app.include_router(uva.router)
app.include_router(system.router)

