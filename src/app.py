"""Main FastAPI application module.

This module initializes the FastAPI application and registers all route handlers.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.logging_config import setup_logging
from config import (
    CORS_ALLOWED_ORIGINS,
    API_HOST,
    API_PORT,
)
from api.routes import auth, class_route, invitation, notification
from core.dependencies import get_inbox_registry

# Setup logging
setup_logging()

# Initialize FastAPI application
app = FastAPI(
    title="EduSpace Enrollment API",
    description="Class invitations, roster claiming and enrollment for EduSpace.",
    version="1.0.0",
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register route handlers
app.include_router(auth.router)
app.include_router(class_route.router)
app.include_router(invitation.router)
app.include_router(notification.router)


@app.on_event("shutdown")
def shutdown_tasks() -> None:
    """Unsubscribe every open invitation inbox from the change feed."""
    get_inbox_registry().close_all()


@app.get("/", summary="API root", tags=["Info"])
def root() -> dict:
    """API root, returns API information and documentation links."""
    return {
        "name": "EduSpace Enrollment API",
        "version": "1.0.0",
        "description": "Class invitations, roster claiming and enrollment for EduSpace.",
        "docs": {
            "swagger": "/docs",
            "redoc": "/redoc",
        },
        "health": "/api/health",
    }


@app.get("/api/health", summary="Health check", tags=["Health"])
def health() -> dict:
    """Health check endpoint.

    Returns:
        Dictionary with status "ok".
    """
    return {"status": "ok"}


# --- Startup code for direct execution ---
if __name__ == "__main__":
    import uvicorn

    server_url = f"http://{API_HOST}:{API_PORT}"
    print(f"🌐 Serving EduSpace API at {server_url}")
    print(f"📚 API docs: {server_url}/docs")

    uvicorn.run("app:app", host=API_HOST, port=API_PORT, reload=True)
