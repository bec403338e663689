"""Configuration module for the EduSpace enrollment service.

This module provides centralized configuration management, including directory
paths, database location, API server settings, authentication and the
serverless function endpoint used for push and email delivery.
All configuration values can be overridden via environment variables.
"""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# --- Directory Configuration ---

# Root directory of the project
ROOT_DIR = Path(__file__).parent.parent.resolve()

# Data directory (SQLite database lives here unless a URL is configured)
DATA_DIR_NAME = "data"
DATA_DIR = Path(os.getenv("EDUSPACE_DATA_DIR", str(ROOT_DIR / DATA_DIR_NAME)))

# --- Database Configuration ---

DATABASE_URL: str = os.getenv(
    "EDUSPACE_DATABASE_URL", f"sqlite:///{DATA_DIR}/eduspace.db"
)

# --- API Server Configuration ---

API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8000"))

# CORS allowed origins (comma-separated list)
# Default includes local development addresses. For production, set via
# CORS_ALLOWED_ORIGINS environment variable.
_CORS_ALLOWED_ORIGINS_STR: str = os.getenv(
    "CORS_ALLOWED_ORIGINS",
    "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,"
    "http://127.0.0.1:3000",
)
CORS_ALLOWED_ORIGINS: List[str] = [
    origin.strip()
    for origin in _CORS_ALLOWED_ORIGINS_STR.split(",")
    if origin.strip()
]

# Public URL of the web client, used for links in notifications and emails
APP_URL: str = os.getenv("APP_URL", "https://eduspaceacademy.online")

# --- Logging Configuration ---

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Authentication Configuration ---

JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "your-secret-key-change-in-production")
JWT_ALGORITHM: str = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES: int = int(
    os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7))
)

# Roles a user can register with
USER_ROLES: List[str] = ["lecturer", "student"]

# --- Serverless Function Configuration ---

# Base URL of the function runtime (e.g. https://<project>.functions.example/v1).
# When unset, push and email delivery are skipped and only in-app
# notifications are written.
FUNCTIONS_URL: Optional[str] = os.getenv("EDUSPACE_FUNCTIONS_URL") or None
FUNCTIONS_KEY: Optional[str] = os.getenv("EDUSPACE_FUNCTIONS_KEY") or None
FUNCTION_TIMEOUT_SECONDS: float = float(os.getenv("FUNCTION_TIMEOUT_SECONDS", "10"))

# Function names
PUSH_FUNCTION_NAME: str = "send-push"
INVITATION_EMAIL_FUNCTION_NAME: str = "send-class-invitation-email"
