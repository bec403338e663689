"""Authentication routes.

This module handles HTTP endpoints for user authentication and registration.
Each issued token carries a session id (``sid``); invitation dismissals and
the invitation inbox are scoped to it.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

import pytz
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    JWT_ALGORITHM,
    JWT_SECRET_KEY,
    USER_ROLES,
)
from core.dependencies import InboxRegistryDep, UserManagerDep
from schemas.user import (
    CurrentUserResponse,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    User,
)
from utils.converters import normalize_email
from utils.user_manager import UserAlreadyExistsError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

# HTTP Bearer token security
security = HTTPBearer()


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token.

    Args:
        data: Data to encode in the token.
        expires_delta: Optional expiration time delta.

    Returns:
        Encoded JWT token string.
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(pytz.utc) + expires_delta
    else:
        expire = datetime.now(pytz.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """Verify JWT token from Authorization header.

    Args:
        credentials: HTTP Bearer token credentials.

    Returns:
        Decoded token payload.

    Raises:
        HTTPException: If token is invalid or expired.
    """
    try:
        payload = jwt.decode(credentials.credentials, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )
    if payload.get("sub") is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )
    return payload


def get_current_user(
    user_manager: UserManagerDep,
    token_payload: dict = Depends(verify_token),
) -> User:
    """Get current authenticated user.

    Raises:
        HTTPException: If user is not found.
    """
    user = user_manager.get_user_by_username(token_payload["sub"])
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


def get_session_id(token_payload: dict = Depends(verify_token)) -> str:
    """Session id of the current token; falls back to the username."""
    return token_payload.get("sid") or token_payload["sub"]


def get_session_expiry(token_payload: dict = Depends(verify_token)) -> Optional[float]:
    """Expiry of the current token as a Unix timestamp."""
    exp = token_payload.get("exp")
    return float(exp) if exp is not None else None


def _public_user(user: User) -> dict:
    user_dict = user.model_dump()
    user_dict.pop("password_hash", None)
    return user_dict


@router.post("/register", summary="Register")
def register(req: RegisterRequest, user_manager: UserManagerDep) -> dict:
    """Register a new lecturer or student.

    Raises:
        HTTPException: If the role or email is invalid or the user exists.
    """
    if req.role not in USER_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid role: {req.role}. Must be one of {', '.join(USER_ROLES)}.",
        )
    email = normalize_email(req.email)
    if not email or "@" not in email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A valid email address is required.",
        )

    try:
        user = user_manager.create_user(
            username=req.username,
            password=req.password,
            role=req.role,
            email=email,
            display_name=req.display_name,
        )
    except UserAlreadyExistsError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )

    return {
        "success": True,
        "message": "User registered successfully",
        "user_id": user.user_id,
    }


@router.post("/login", response_model=LoginResponse, summary="Log in")
def login(req: LoginRequest, user_manager: UserManagerDep) -> LoginResponse:
    """Login with username and password.

    Raises:
        HTTPException: If login fails.
    """
    user = user_manager.get_user_by_username(req.username)
    if user is None or not user_manager.verify_password(req.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    access_token = create_access_token(
        data={"sub": user.username, "sid": uuid.uuid4().hex},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    logger.info("User %s logged in", user.username)
    return LoginResponse(user=_public_user(user), token=access_token)


@router.post("/logout", summary="Log out")
def logout(
    inboxes: InboxRegistryDep,
    session_id: str = Depends(get_session_id),
) -> dict:
    """Logout endpoint.

    Tokens are stateless and are dropped client-side; the session's
    invitation inbox is closed here.
    """
    inboxes.close(session_id)
    return {"success": True, "message": "Logged out successfully"}


@router.get("/me", response_model=CurrentUserResponse, summary="Current user")
def get_current_user_info(current_user: User = Depends(get_current_user)) -> CurrentUserResponse:
    return CurrentUserResponse(user=_public_user(current_user))
