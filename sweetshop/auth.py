"""
Authentication and authorization utilities.

Provides password hashing, account registration and login, JWT token
creation/validation, and FastAPI dependencies for protecting endpoints.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .access import Action, Principal, Role, require
from .config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from .errors import AuthError, Conflict

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Security scheme for JWT bearer tokens; missing headers are reported as AuthError
security = HTTPBearer(auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against a hashed password.

    Args:
        plain_password: The plain text password to verify
        hashed_password: The hashed password to compare against

    Returns:
        True if the password matches, False otherwise
    """
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password for secure storage.

    Args:
        password: The plain text password to hash

    Returns:
        The hashed password
    """
    return pwd_context.hash(password)


def create_access_token(principal: Principal, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token for a principal.

    Args:
        principal: Identity to encode in the token
        expires_delta: Optional custom expiration time delta

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {
        "sub": str(principal.id),
        "email": principal.email,
        "role": principal.role.value,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def authenticate(token: str) -> Principal:
    """
    Resolve a bearer token to the principal it was issued for.

    Raises:
        AuthError: if the token is malformed, expired, or carries unknown claims
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id_str: str = payload.get("sub")
        role: str = payload.get("role")
        if user_id_str is None or role is None:
            raise AuthError("Invalid token")
        return Principal(id=int(user_id_str), role=Role(role), email=payload.get("email") or "")
    except (JWTError, ValueError) as e:
        logger.error(f"JWT validation error: {e}")
        raise AuthError("Invalid token")


def _principal_for(user: models.User) -> Principal:
    return Principal(id=user.id, role=Role(user.role), email=user.email)


def register_user(db: Session, user: schemas.UserRegister) -> schemas.AuthResponse:
    """
    Create a user account and issue a token for it.

    Only the literal role "admin" creates an admin; anything else is a customer.

    Raises:
        Conflict: if the email is already registered
    """
    if db.query(models.User).filter(models.User.email == user.email).first():
        raise Conflict("Email already registered")

    role = Role.ADMIN if user.role == Role.ADMIN.value else Role.CUSTOMER
    db_user = models.User(
        name=user.name,
        email=user.email,
        password_hash=get_password_hash(user.password),
        role=role.value,
    )
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Email already registered")
    db.refresh(db_user)
    logger.info(f"Registered user {db_user.id} with role {db_user.role}")

    token = create_access_token(_principal_for(db_user))
    return schemas.AuthResponse(user=schemas.User.model_validate(db_user), token=token)


def login_user(db: Session, email: str, password: str) -> schemas.AuthResponse:
    """
    Authenticate a user by email and password and issue a token.

    Raises:
        AuthError: if the email is unknown or the password does not match
    """
    user = db.query(models.User).filter(models.User.email == email).first()
    if user is None or not verify_password(password, user.password_hash):
        raise AuthError("Invalid credentials")
    token = create_access_token(_principal_for(user))
    return schemas.AuthResponse(user=schemas.User.model_validate(user), token=token)


def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """
    FastAPI dependency to get the current principal from the bearer token.

    Raises:
        AuthError: if the header is missing or the token is invalid
    """
    if credentials is None:
        raise AuthError("Unauthorized")
    return authenticate(credentials.credentials)


def requires(action: Action):
    """
    Build a FastAPI dependency that admits only principals allowed to perform `action`.

    Example:
        @router.post("/", dependencies=[Depends(requires(Action.CREATE))])
    """
    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        return require(principal, action)

    dependency.__name__ = f"require_{action.value}"
    return dependency
