import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ---------------------------------------------------------------------
# INTERNAL IMPORTS
# ---------------------------------------------------------------------
from . import config
from .database import Base, engine
from .errors import (
    DeclarationNotFoundError, FiscalError, FranchiseThresholdExceededError,
    InvalidDeclarationStateError, InvalidInputError, RateTableError,
)
from .logging_config import setup_logging
from .routers import contributions, declarations, taxes
from .tax.rates import load_rate_book

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------
# FASTAPI APP
# ---------------------------------------------------------------------
app = FastAPI(title="microfisc", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600
)


# =====================================================
# STARTUP
# =====================================================
@app.on_event("startup")
def startup():
    setup_logging(config.LOG_LEVEL)
    rate_book = load_rate_book()
    logger.info("Fiscal years available: %s", rate_book.years)
    Base.metadata.create_all(bind=engine)


# ---------------------------------------------------------------------
# HEALTH ROUTES
# ---------------------------------------------------------------------
@app.get("/")
def root():
    return JSONResponse(
        content={"ok": True, "service": "microfisc-api"},
        headers=config.get_cors_headers()
    )


@app.get("/health")
def health():
    return JSONResponse(
        content={"status": "ok", "fiscal_years": load_rate_book().years},
        headers=config.get_cors_headers()
    )


# ---------------------------------------------------------------------
# ROUTERS
# ---------------------------------------------------------------------
app.include_router(contributions.router)
app.include_router(taxes.router)
app.include_router(declarations.router)


# =====================================================
# ERROR HANDLERS
# =====================================================
def _error(status_code: int, exc: Exception, **extra):
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc), **extra},
        headers=config.get_cors_headers()
    )


@app.exception_handler(FiscalError)
async def fiscal_error_handler(request: Request, exc: FiscalError):
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, type(exc).__name__, exc)

    if isinstance(exc, FranchiseThresholdExceededError):
        return _error(
            422, exc,
            threshold=exc.threshold,
            activity_type=exc.activity_type,
            year=exc.year,
            revenue=exc.revenue,
        )
    if isinstance(exc, InvalidInputError):
        return _error(400, exc)
    if isinstance(exc, DeclarationNotFoundError):
        return _error(404, exc)
    if isinstance(exc, InvalidDeclarationStateError):
        return _error(409, exc, current=exc.current, target=exc.target)
    if isinstance(exc, RateTableError):
        return _error(500, exc)
    return _error(400, exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # Malformed requests (unknown activity, bad enum, missing field) are invalid input: 400.
    # 422 stays reserved for the franchise threshold.
    logger.warning("%s %s -> invalid request: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(
        status_code=400,
        content={"error": "InvalidInputError", "detail": jsonable_encoder(exc.errors())},
        headers=config.get_cors_headers()
    )
