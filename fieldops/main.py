import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import all models so every table is registered with Base
from . import (
    models,  # noqa: F401
    models_invoice,  # noqa: F401
    models_xero,  # noqa: F401
)
from .config import ALLOWED_ORIGINS, XERO_STATE_TTL_SECONDS, XERO_TENANT_FILE, XERO_TOKEN_FILE
from .database import Base, SessionLocal, engine
from .domain.invoices.router import router as invoices_router
from .domain.xero import router as xero_router
from .domain.xero.errors import XeroError
from .domain.xero.session import XeroSession
from .domain.xero.token_store import TokenStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def _import_legacy_tokens(session: XeroSession):
    db = SessionLocal()
    try:
        TokenStore(db, session).import_legacy_files(XERO_TOKEN_FILE, XERO_TENANT_FILE)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Another worker may have created them first
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")
            raise

    app.state.xero_session = XeroSession(state_ttl_seconds=XERO_STATE_TTL_SECONDS)
    _import_legacy_tokens(app.state.xero_session)

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Fieldops API", version="1.0.0", lifespan=lifespan)


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold the raw exception object
    return [{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors from HTTPBearer to 401 authentication errors
    when the issue is with the Authorization header
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                },
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


@app.exception_handler(XeroError)
async def xero_exception_handler(request: Request, exc: XeroError):
    logger.warning(f"Xero error on {request.method} {request.url.path}: {exc.code} - {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(invoices_router)
app.include_router(xero_router)


@app.get("/")
def root():
    return {"message": "Fieldops API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
