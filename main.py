"""
Fund Connect API - Main Entry Point
Agent/investor messaging, fund listings and role management on Supabase
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from contextlib import asynccontextmanager
import logging

from fund_connect.config import settings
from fund_connect.api import (
    conversations,
    funds,
    interests,
    profiles,
    roles,
    saved_searches,
    websocket as ws_router,
)
from fund_connect.middleware import ProxyHeadersMiddleware, register_exception_handlers

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan (startup/shutdown)"""
    logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION}...")

    if not settings.is_supabase_configured:
        logger.warning("Supabase is not configured; data endpoints will fail until SUPABASE_URL and a key are set")
    if not settings.is_auth_configured:
        logger.warning("SUPABASE_JWT_SECRET is not set; every authenticated request will be rejected")
    if settings.WEBSOCKET_ENABLED and not settings.is_realtime_configured:
        logger.info("Supabase Realtime disabled; WebSocket clients receive in-process broadcasts only")

    logger.info("Application startup complete")
    yield

    logger.info("Application shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    description="""
## Fund Connect API

Private-markets workspace connecting placement **agents** with **investors**.

- **Roles**: resolve whether a user is an agent or an investor, assign and register roles
- **Conversations**: one conversation per agent/investor pair, unread tracking
- **WebSocket**: live message delivery with optimistic sends
- **Funds**: listings, filters, interests and saved searches
""",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    redirect_slashes=True,
    swagger_ui_parameters={
        "defaultModelsExpandDepth": -1,
        "docExpansion": "list",
        "filter": True,
        "persistAuthorization": True,
    },
    redoc_url="/redoc",
    docs_url="/docs",
    openapi_url="/openapi.json"
)

# ProxyHeadersMiddleware first so the scheme is fixed before any redirect
app.add_middleware(ProxyHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(roles.router)  # Role checks, assignment, registration (/check-role, /assign-role, ...)
app.include_router(conversations.router)  # Conversations and messages (/conversations/*)
app.include_router(ws_router.router)  # Live conversation channel (/ws/*)
app.include_router(funds.router)  # Fund listings and interest (/funds/*)
app.include_router(interests.router)  # Investor interests (/interests/*)
app.include_router(saved_searches.router)  # Saved fund searches (/saved-searches/*)
app.include_router(profiles.router)  # User profile (/profile)


def custom_openapi():
    """OpenAPI schema with the bearer security scheme used by every protected route"""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=app.description,
        routes=app.routes,
    )

    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "Supabase access token"
        }
    }
    openapi_schema["security"] = [{"BearerAuth": []}]

    openapi_schema["tags"] = [
        {"name": "health", "description": "Health check"},
        {"name": "roles", "description": "Agent/investor role resolution, assignment and invitations"},
        {"name": "conversations", "description": "One-to-one agent/investor conversations and messages"},
        {"name": "websocket", "description": "Live message delivery. Requires a JWT in the `token` query parameter."},
        {"name": "funds", "description": "Fund listings, filters and interest"},
        {"name": "interests", "description": "Investor interests"},
        {"name": "saved-searches", "description": "Saved fund searches with alerts"},
        {"name": "profile", "description": "Personal and professional profile"},
    ]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi


@app.get(
    "/",
    tags=["health"],
    summary="API Health Check",
    description="Check if the API is running and which backends are configured."
)
def root():
    return {
        "status": "healthy",
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "supabase_configured": settings.is_supabase_configured,
        "realtime_enabled": settings.is_realtime_configured,
        "docs": {
            "swagger_ui": "/docs",
            "redoc": "/redoc",
            "openapi_json": "/openapi.json"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        ws_ping_interval=20.0,
        ws_ping_timeout=60.0,
    )
