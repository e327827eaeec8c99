import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from spacio import __version__
from spacio.config import get_settings, mask_secret
from spacio.database import init_db
from spacio.exceptions import SpacioError
from spacio.routers import assistant, auth, bookings, cancel_requests, rispat, rooms
from spacio.schemas import envelope
from spacio.timeutils import local_now


logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s - %(message)s")
logger = logging.getLogger("spacio")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    settings = get_settings()
    logger.info(
        "Spacio API started: env=%s model=%s key=%s",
        settings.app_env,
        settings.gemini_model,
        mask_secret(settings.google_api_key),
    )
    yield


app = FastAPI(
    title="Spacio Meeting Room Booking API",
    description="API for meeting room booking with a conversational booking assistant",
    version=__version__,
    lifespan=lifespan,
)

# Add CORS middleware for frontend communication
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (auth, rooms, bookings, cancel_requests, rispat, assistant):
    app.include_router(module.router)


@app.exception_handler(SpacioError)
async def spacio_error_handler(request: Request, exc: SpacioError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=envelope(exc.data, exc.message, success=False))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=envelope(None, "Internal server error", success=False))


@app.get("/")
async def root():
    """Root endpoint"""
    return envelope({"name": "Spacio Meeting Room Booking API", "status": "running"})


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return envelope(
        {
            "status": "healthy",
            "agent_available": get_settings().has_gemini_key,
            "version": __version__,
        },
        "Spacio API is running",
    )


@app.get("/diagnostics")
def diagnostics():
    """Check configuration and database connectivity."""
    from sqlalchemy import text

    from spacio.database import engine

    settings = get_settings()
    results = {
        "environment_check": {
            "GOOGLE_API_KEY": "✅ Set" if settings.has_gemini_key else "❌ Missing",
            "SPACIO_DATABASE_URL": "✅ Set" if settings.database_url else "⚠️  Not set (using defaults)",
            "SPACIO_ADMIN_EMAIL": "✅ Set" if settings.admin_email else "⚠️  Not set (no bootstrap admin)",
        },
        "timezone": settings.timezone,
        "model": settings.gemini_model,
    }
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        results["database"] = "✅ Connected"
    except Exception as e:
        logger.error("Database check failed: %s", e)
        results["database"] = f"❌ {e}"
    results["agent_test"] = "✅ Agent ready" if settings.has_gemini_key else "⚠️  Fallback replies only"
    return envelope(results, "Diagnostics completed. Check results for any missing configuration.")


@app.get("/api/server-time")
async def server_time():
    now = local_now()
    return envelope(
        {
            "datetime": now.isoformat(),
            "date": now.date().isoformat(),
            "time": now.strftime("%H:%M:%S"),
            "timezone": get_settings().timezone,
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="localhost", port=8000)
