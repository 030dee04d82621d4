from fastapi import FastAPI, Request, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from api.v1.endpoints import credit_router, tools_router, admin_router, notifications_router
from clients.supabase_auth import AuthUser
from core.config import settings
from core.dependencies import get_optional_user
from core.exceptions import AppError
from core.middleware import request_context_middleware
from db.session import init_db
from contextlib import asynccontextmanager
from typing import Optional
import os
import sys
import logging
import uvicorn

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.FAST_STARTUP:
        logger.info("Fast startup mode - skipping database initialization")
    else:
        try:
            logger.info("Initializing database...")
            init_db()
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {str(e)}")
            raise
    yield

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri="memory://",
    enabled=settings.RATE_LIMIT_ENABLED,
)

app = FastAPI(
    title="Toolkit Hub API",
    description="""
    Toolkit Hub API Documentation

    Backend for the AI toolkit dashboard: credits and wallet accounting, manual
    crypto top-ups, an admin back-office and credit-gated AI tool proxies.

    Authentication:
    Sessions are issued by the hosted auth service. Send its access token on
    every protected endpoint:
    Authorization: Bearer <your_token>

    Credits:
    - Every user gets a free monthly quota, reset on the first day of each UTC month
    - Approved top-ups add paid credits to a wallet that never expires
    - Tools draw on the free quota first, then on the wallet

    Errors:
    Every failure is returned as {"error": "<message>"}; credit failures also
    carry creditsNeeded and remaining.
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, replace with specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(request_context_middleware)

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_payload()))

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )

@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {str(exc)}")
    return JSONResponse(status_code=500, content={"error": str(exc)})

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {str(exc)}")
    return JSONResponse(status_code=500, content={"error": str(exc) or "Internal server error"})

def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    # Add security scheme
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "Bearer": {
            "type": "http",
            "scheme": "bearer",
            "description": "Access token issued by the hosted auth service"
        }
    }
    openapi_schema["security"] = [{"Bearer": []}]

    openapi_schema["tags"] = [
        {"name": "Credits", "description": "Credit summary, packages and top-up requests"},
        {"name": "Tools", "description": "Credit-gated AI tool proxies"},
        {"name": "Notifications", "description": "Per-user notification inbox"},
        {"name": "Admin", "description": "Back-office: top-up decisions, broadcasts, prompts and users"},
    ]

    app.openapi_schema = openapi_schema
    return app.openapi_schema

app.openapi = custom_openapi

@app.get("/health")
@limiter.limit(settings.RATE_LIMIT_DEFAULT)
async def health(
    request: Request,
    current_user: Optional[AuthUser] = Depends(get_optional_user)
):
    """
    Health check endpoint that can optionally include user information if authenticated.
    """
    response = {
        "status": "ok",
        "version": app.version,
        "environment": settings.ENVIRONMENT,
    }

    if current_user:
        response["user"] = {
            "id": current_user.id,
            "email": current_user.email,
            "email_verified": current_user.email_verified,
        }

    return response

app.include_router(credit_router, prefix=settings.API_PREFIX)
app.include_router(tools_router, prefix=settings.API_PREFIX)
app.include_router(admin_router, prefix=settings.API_PREFIX)
app.include_router(notifications_router, prefix=settings.API_PREFIX)

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    print(f"Starting server on port {port}")

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=settings.ENVIRONMENT == "development"
    )
