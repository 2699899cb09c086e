"""
Meta Ads Setup Wizard — FastAPI Backend
Walks a browser session through Facebook OAuth, ad-account discovery and
campaign extraction; hands back a .env file or a CSV report.
Session state persisted to PostgreSQL so it survives the OAuth redirect.
Serves frontend static files when present.
"""

import logging
from pathlib import Path
from contextlib import asynccontextmanager
from starlette.responses import Response, FileResponse
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from fastapi.middleware.cors import CORSMiddleware
from adwizard.auth import SessionCookieMiddleware
from adwizard.config import get_settings
from adwizard.database import init_db, check_db_connection, purge_expired_sessions
from adwizard.routers import wizard, campaigns

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()

SERVICE_NAME = "Meta Ads Setup Wizard"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {SERVICE_NAME}...")
    try:
        await init_db()
        await purge_expired_sessions()
    except Exception as e:
        logger.error(f"Startup failed (DB/init): {e}", exc_info=True)
        # Still yield so app can serve /api/health (degraded) and logs are visible
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title=SERVICE_NAME,
    description="Facebook Graph API OAuth, ad-account discovery and campaign extraction",
    version="1.0.0",
    lifespan=lifespan,
)

# Session cookie first (runs second); CORS last (runs first)
app.add_middleware(SessionCookieMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Register Routers ─────────────────────────────────────────────────
app.include_router(wizard.router, prefix="/api/wizard", tags=["Setup Wizard"])
app.include_router(campaigns.router, prefix="/api/campaigns", tags=["Campaign Extractor"])
app.include_router(wizard.callback_router)


@app.get("/api/health")
async def health_check():
    db_ok = await check_db_connection()
    return {
        "status": "healthy" if db_ok else "degraded",
        "service": SERVICE_NAME,
        "database": "connected" if db_ok else "disconnected",
    }


# Static files + SPA fallback (when backend/static exists)
STATIC_DIR = Path(__file__).resolve().parent.parent / "static"
if STATIC_DIR.exists():
    if (STATIC_DIR / "assets").exists():
        app.mount("/assets", StaticFiles(directory=STATIC_DIR / "assets"), name="assets")

    @app.get("/{full_path:path}", include_in_schema=False)
    async def serve_spa(full_path: str):
        """Serve SPA for non-API routes. API routes registered above."""
        if full_path.startswith("api") or full_path == "api":
            return Response(status_code=404)
        file_path = STATIC_DIR / full_path
        if file_path.is_file():
            return FileResponse(file_path)
        return FileResponse(STATIC_DIR / "index.html")
else:
    @app.get("/", include_in_schema=False)
    async def root():
        return {"service": SERVICE_NAME, "wizard": "/api/wizard"}
