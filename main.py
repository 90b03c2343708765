import logging
import os

import socketio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

import database
import uploads
from announcements import router as announcements_router
from auth import router as auth_router, seed_teacher
from chat import router as chat_router
from join_requests import router as requests_router
from notifications import router as notifications_router
from projects import router as projects_router
from realtime import sio
from users import router as users_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

APP_ENV = os.getenv("APP_ENV", "production")
API_PREFIX = "/api"
FRONTEND_URL = os.getenv("FRONTEND_URL", "*")

app = FastAPI(title="GU Collab API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if FRONTEND_URL == "*" else FRONTEND_URL.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------
# Error handling
# ----------------------
@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    detail = str(exc) if APP_ENV == "development" else "Internal server error"
    return JSONResponse(status_code=500, content={"detail": "Server error", "error": detail})


# ----------------------
# Startup: indexes and teacher seed
# ----------------------
@app.on_event("startup")
def prepare_database():
    # If DB is not configured, skip so the app can start
    if database.db is None:
        logger.warning("DATABASE_URL / DATABASE_NAME not set; running without a database")
        return
    try:
        database.ensure_indexes(database.db)
        seed_teacher(database.db)
    except Exception:
        # don't crash startup on index or seeding errors
        logger.exception("Database preparation failed")


# ----------------------
# Basic routes
# ----------------------
@app.get("/")
def root():
    return {"message": "GU Collab API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()
    except Exception as e:
        response["database"] = f"⚠️ Connected but error: {str(e)[:80]}"
    return response


for router in (
    auth_router,
    users_router,
    projects_router,
    requests_router,
    chat_router,
    notifications_router,
    announcements_router,
):
    app.include_router(router, prefix=API_PREFIX)

app.mount("/uploads", StaticFiles(directory=uploads.uploads_path(), check_dir=False), name="uploads")

# Socket.IO in front, everything else falls through to FastAPI
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(asgi_app, host="0.0.0.0", port=port)
