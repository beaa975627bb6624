"""
Authentication & Authorization Service for the Ledger API

Implements:
- JWT-based authentication (username + password login)
- Role-based access control
- Password hashing with bcrypt

Roles:
- ADMIN: user administration, global views, all reports
- ACCOUNTANT: day-to-day bookkeeping, the only role allowed to delete transactions
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database.ledger_models import UserDB, UserRole, utc_now
from utils.validation_errors import LedgerValidationError

logger = logging.getLogger(__name__)

settings = get_settings()

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# ==================== MODELS ====================

class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class RegisterRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = UserRole.ACCOUNTANT.value


class LoginResponse(BaseModel):
    token: str
    role: str


class TokenData(BaseModel):
    """Data extracted from JWT token"""
    username: str
    user_id: int
    role: str
    exp: Optional[datetime] = None
    token_type: str = "access"


class AuthUser(BaseModel):
    """Authenticated user context"""
    id: int
    username: str
    role: str
    email: Optional[str] = None

    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def is_accountant(self) -> bool:
        return self.role == UserRole.ACCOUNTANT.value


class UserResponse(BaseModel):
    id: int
    username: str
    email: Optional[str] = None
    role: str
    createdAt: Optional[datetime] = None


def user_to_response(user: UserDB) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        role=_role_value(user.role),
        createdAt=user.created_at,
    )


def _role_value(role) -> str:
    return role.value if isinstance(role, UserRole) else str(role)


# ==================== PASSWORD UTILITIES ====================

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.error(f"Password verification error: {e}")
        return False


def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)


# ==================== JWT UTILITIES ====================

def create_access_token(
    username: str,
    user_id: int,
    role: str,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a JWT access token"""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode = {
        "sub": username,
        "uid": user_id,
        "role": role,
        "type": "access",
        "exp": expire,
        "iat": now,
    }

    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[TokenData]:
    """Decode and validate a JWT token"""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT decode error: {e}")
        return None

    username = payload.get("sub")
    user_id = payload.get("uid")
    role = payload.get("role")
    exp = payload.get("exp")

    if not username or user_id is None or not role:
        return None

    return TokenData(
        username=username,
        user_id=int(user_id),
        role=role,
        token_type=payload.get("type", "access"),
        exp=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None
    )


# ==================== AUTH SERVICE ====================

class AuthService:
    """
    Authentication service backed by the users table.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_username(self, username: str) -> Optional[UserDB]:
        result = await self.db.execute(select(UserDB).where(UserDB.username == username))
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: int) -> Optional[UserDB]:
        result = await self.db.execute(select(UserDB).where(UserDB.id == user_id))
        return result.scalar_one_or_none()

    async def list_users(self) -> list:
        result = await self.db.execute(select(UserDB).order_by(UserDB.id))
        return list(result.scalars().all())

    async def authenticate_user(self, username: str, password: str) -> Optional[AuthUser]:
        """Authenticate a user with username and password"""
        if not username or not password:
            return None

        user = await self.get_user_by_username(username)

        if not user:
            logger.warning(f"Login failed: user not found - {username}")
            return None

        if not verify_password(password, user.password):
            logger.warning(f"Login failed: invalid password - {username}")
            return None

        role = _role_value(user.role)
        logger.info(f"Login successful: {username} (role: {role})")

        return AuthUser(id=user.id, username=user.username, role=role, email=user.email)

    async def login(self, username: str, password: str) -> Optional[tuple]:
        """Returns (AuthUser, LoginResponse) or None on bad credentials"""
        user = await self.authenticate_user(username, password)
        if not user:
            return None

        token = create_access_token(username=user.username, user_id=user.id, role=user.role)
        return user, LoginResponse(token=token, role=user.role)

    async def register_user(self, request: RegisterRequest) -> UserDB:
        """Register a new user; raises LedgerValidationError on bad input"""
        username = (request.username or "").strip()
        if not username:
            raise LedgerValidationError("Username is required", parameter="username")
        if not request.password:
            raise LedgerValidationError("Password is required", parameter="password")

        role_name = (request.role or UserRole.ACCOUNTANT.value).strip().upper()
        if role_name not in [r.value for r in UserRole]:
            raise LedgerValidationError(f"Invalid role: {request.role}", parameter="role")

        if await self.get_user_by_username(username):
            raise LedgerValidationError("Username already exists", parameter="username")

        user = UserDB(
            username=username,
            email=(request.email or "").strip() or None,
            password=get_password_hash(request.password),
            role=UserRole(role_name),
            created_at=utc_now(),
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"Registered user {username} with role {role_name}")
        return user
