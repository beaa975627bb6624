from .auth import router as auth_router
from .transactions import router as transactions_router
from .admin import router as admin_router
from .audit import router as audit_router

__all__ = [
    'auth_router',
    'transactions_router',
    'admin_router',
    'audit_router',
]
