from .connection import get_db, engine, AsyncSessionLocal, init_db, Base

# Import ledger models so they are registered with Base
from .ledger_models import (
    UserDB, TransactionDB, ReconciliationDB, AuditLogDB,
    UserRole, TransactionType, TransactionStatus, MatchStatus,
)

__all__ = [
    'get_db', 'engine', 'AsyncSessionLocal', 'init_db', 'Base',
    'UserDB', 'TransactionDB', 'ReconciliationDB', 'AuditLogDB',
    'UserRole', 'TransactionType', 'TransactionStatus', 'MatchStatus',
]
