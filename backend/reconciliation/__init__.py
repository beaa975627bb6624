"""
Reconciliation Module

Bank reconciliation for client ledgers:
- Balance calculation over COMPLETED transactions in a period
- MATCHED / UNMATCHED classification against a bank balance
- Persisted snapshots
- CSV, spreadsheet and printable report exports
"""

from reconciliation.matching_rules.balance_rules import (
    BalanceMatchingRules,
    ReconciliationResult,
    balance_rules,
    format_period,
    round_money,
)
from reconciliation.export_registry import (
    ExportFormat,
    ExportConfig,
    ExportRegistry,
    export_registry
)
from reconciliation.services.reconciliation_service import ReconciliationService
from reconciliation.endpoints.reconciliation_api import router as reconciliation_router

__all__ = [
    # Matching Rules
    'BalanceMatchingRules',
    'ReconciliationResult',
    'balance_rules',
    'format_period',
    'round_money',
    # Export Registry
    'ExportFormat',
    'ExportConfig',
    'ExportRegistry',
    'export_registry',
    # Service
    'ReconciliationService',
    # Router
    'reconciliation_router'
]
