from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from database import get_db
from services.auth import (
    AuthService,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
)
from services.audit import AuditService, AuditAction
from utils.validation_errors import LedgerValidationError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["Authentication"])


# Helper to extract request metadata for audit
def _get_request_metadata(request: Request) -> dict:
    """Extract IP address and user agent from request for audit logging"""
    ip_address = None
    user_agent = request.headers.get("user-agent", "")[:500] if request else None

    if request:
        # Check for forwarded headers
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip_address = forwarded.split(",")[0].strip()
        else:
            real_ip = request.headers.get("x-real-ip")
            if real_ip:
                ip_address = real_ip
            elif request.client:
                ip_address = request.client.host

    return {"ip_address": ip_address, "user_agent": user_agent}


# ==================== PUBLIC ENDPOINTS ====================

@router.post("/login", response_model=LoginResponse)
async def login(
    login_data: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Authenticate user and return a JWT.

    Example:
    ```json
    {
      "username": "accountant",
      "password": "secret"
    }
    ```
    """
    metadata = _get_request_metadata(request)
    audit = AuditService(db)

    outcome = await AuthService(db).login(login_data.username or "", login_data.password or "")

    if not outcome:
        await audit.log_action(
            AuditAction.LOGIN_FAILED,
            details=f"Failed login for {login_data.username or '(blank)'} from {metadata['ip_address']}"
        )
        raise LedgerValidationError("Invalid credentials")

    user, response = outcome
    await audit.log_action(
        AuditAction.USER_LOGIN,
        user_id=user.id,
        details=f"{user.username} logged in ({user.role}) from {metadata['ip_address']}"
    )
    return response


@router.post("/register", response_model=dict)
async def register(
    register_data: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new user. Role defaults to ACCOUNTANT.
    """
    user = await AuthService(db).register_user(register_data)

    await AuditService(db).log_action(
        AuditAction.USER_REGISTER,
        user_id=user.id,
        details=f"User registered: {user.username} ({user.role.value})"
    )

    return {"success": True, "message": "User registered"}
