"""Authentication routes."""

import logging

from fastapi import APIRouter, Request

from cafepos.core.exceptions import AuthenticationError
from cafepos.core.rate_limit import limiter
from cafepos.core.rbac import CurrentUser
from cafepos.core.security import create_access_token, verify_password
from cafepos.db.session import DbSession
from cafepos.models.user import User
from cafepos.schemas.auth import LoginRequest, Token, UserResponse

logger = logging.getLogger("auth")

router = APIRouter()


@router.post("/login", response_model=Token)
@limiter.limit("5/minute")
def login(request: Request, login_request: LoginRequest, db: DbSession):
    """Authenticate user and return JWT token."""
    client_ip = request.client.host if request.client else "unknown"
    user = db.query(User).filter(User.email == login_request.email).first()

    if not user or not verify_password(login_request.password, user.password_hash):
        logger.warning(f"Failed login attempt for email: {login_request.email} from IP: {client_ip}")
        raise AuthenticationError("Invalid email or password")
    if not user.is_active:
        logger.warning(f"Login attempt for inactive user: {login_request.email} (ID: {user.id})")
        raise AuthenticationError("User account is inactive")

    access_token = create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role.value}
    )
    logger.info(f"User {user.email} logged in from {client_ip}")
    return Token(access_token=access_token)


@router.get("/me", response_model=UserResponse)
def get_me(db: DbSession, current_user: CurrentUser):
    """Get the logged-in user's profile."""
    user = db.get(User, current_user.user_id)
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role.value,
        is_active=user.is_active,
    )
