"""
Balance Matching Rules

Pure reconciliation calculation over a list of ledger transactions.

Filter keys:
- client name (case-insensitive, trimmed)
- status == COMPLETED
- date within [from_date, to_date] inclusive
- bank name (case-insensitive, trimmed), only when a bank filter is given

Balances:
- system_balance = opening + credits - debits
- difference = system_balance - bank_balance
- MATCHED when |difference| < 0.01, otherwise UNMATCHED

All money values are rounded half-up to cents with Decimal before they
are compared or returned.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from config import get_settings
from database.ledger_models import MatchStatus, TransactionStatus, TransactionType

CENT = Decimal("0.01")
ALL_BANKS = "All Banks"
PERIOD_FORMAT = "%d %B %Y"
PERIOD_SEPARATOR = " – "


def round_money(value: Any) -> Decimal:
    """Round to two decimals, half-up."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _normalize(value: Optional[str]) -> str:
    return (value or "").strip().casefold()


def _enum_value(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value or "").strip().upper()


def _as_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


def format_period(from_date: Optional[date], to_date: Optional[date]) -> str:
    """Human readable period, e.g. '01 January 2025 – 31 January 2025'."""
    if from_date is None or to_date is None:
        return f"N/A{PERIOD_SEPARATOR}N/A"
    return f"{from_date.strftime(PERIOD_FORMAT)}{PERIOD_SEPARATOR}{to_date.strftime(PERIOD_FORMAT)}"


@dataclass
class ReconciliationResult:
    """
    Outcome of one reconciliation calculation.

    Derived data only; recomputed on every request.
    """
    client_name: str
    bank_name: str
    from_date: Optional[date]
    to_date: Optional[date]
    opening_balance: Decimal
    total_credit: Decimal
    total_debit: Decimal
    system_balance: Decimal
    bank_balance: Decimal
    difference: Decimal
    match_status: MatchStatus
    transaction_count: int
    generated_at: datetime = field(default_factory=datetime.now)
    # Bank filter as requested; None when all banks were counted
    bank_filter: Optional[str] = None

    @property
    def period(self) -> str:
        return format_period(self.from_date, self.to_date)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clientName": self.client_name,
            "bankName": self.bank_name,
            "fromDate": self.from_date.isoformat() if self.from_date else None,
            "toDate": self.to_date.isoformat() if self.to_date else None,
            "period": self.period,
            "openingBalance": float(self.opening_balance),
            "totalCredit": float(self.total_credit),
            "totalDebit": float(self.total_debit),
            "systemBalance": float(self.system_balance),
            "bankBalance": float(self.bank_balance),
            "difference": float(self.difference),
            "matchStatus": self.match_status.value,
            "transactionCount": self.transaction_count,
            "generatedAt": self.generated_at.isoformat(),
        }


class BalanceMatchingRules:
    """
    Reconciliation rules for client ledgers.

    Stateless apart from the default look-back window, so one instance
    can be shared by every request.
    """

    MATCH_TOLERANCE = CENT

    def __init__(self, default_period_days: int = 30):
        self.default_period_days = default_period_days

    # ==================== PERIOD ====================

    def resolve_period(
        self,
        from_date: Optional[date],
        to_date: Optional[date],
        today: Optional[date] = None
    ) -> Tuple[date, date]:
        """Fill in a missing bound: from defaults to today minus the window, to defaults to today."""
        today = today or date.today()
        if from_date is None:
            from_date = today - timedelta(days=self.default_period_days)
        if to_date is None:
            to_date = today
        return from_date, to_date

    # ==================== FILTERING ====================

    def matches(
        self,
        transaction: Any,
        client_name: str,
        bank_name: Optional[str],
        from_date: date,
        to_date: date
    ) -> bool:
        wanted_client = _normalize(client_name)
        if not wanted_client or _normalize(transaction.client_name) != wanted_client:
            return False

        if _enum_value(transaction.status) != TransactionStatus.COMPLETED.value:
            return False

        txn_date = _as_date(transaction.date)
        if txn_date is None or txn_date < from_date or txn_date > to_date:
            return False

        wanted_bank = _normalize(bank_name)
        if wanted_bank and _normalize(transaction.bank_name) != wanted_bank:
            return False

        return True

    def filter_transactions(
        self,
        transactions: Iterable[Any],
        client_name: str,
        bank_name: Optional[str],
        from_date: date,
        to_date: date
    ) -> List[Any]:
        return [
            txn for txn in transactions
            if self.matches(txn, client_name, bank_name, from_date, to_date)
        ]

    # ==================== BALANCES ====================

    @staticmethod
    def sum_by_type(transactions: Iterable[Any], txn_type: TransactionType) -> Decimal:
        total = sum(
            (Decimal(str(txn.amount)) for txn in transactions
             if _enum_value(txn.type) == txn_type.value and txn.amount is not None),
            Decimal("0")
        )
        return round_money(total)

    def classify(self, difference: Decimal) -> MatchStatus:
        if abs(difference) < self.MATCH_TOLERANCE:
            return MatchStatus.MATCHED
        return MatchStatus.UNMATCHED

    def build_result(
        self,
        client_name: str,
        bank_name: Optional[str],
        from_date: Optional[date],
        to_date: Optional[date],
        opening_balance: Any,
        bank_balance: Any,
        total_credit: Decimal,
        total_debit: Decimal,
        transaction_count: int,
    ) -> ReconciliationResult:
        opening = round_money(opening_balance)
        bank = round_money(bank_balance)
        system_balance = round_money(opening + total_credit - total_debit)
        difference = round_money(system_balance - bank)

        return ReconciliationResult(
            client_name=(client_name or "").strip(),
            bank_name=(bank_name or "").strip() or ALL_BANKS,
            from_date=from_date,
            to_date=to_date,
            opening_balance=opening,
            total_credit=total_credit,
            total_debit=total_debit,
            system_balance=system_balance,
            bank_balance=bank,
            difference=difference,
            match_status=self.classify(difference),
            transaction_count=transaction_count,
            bank_filter=(bank_name or "").strip() or None,
        )

    def calculate(
        self,
        client_name: str,
        bank_name: Optional[str],
        from_date: Optional[date],
        to_date: Optional[date],
        opening_balance: Any,
        bank_balance: Any,
        transactions: Iterable[Any],
    ) -> ReconciliationResult:
        """
        Reconcile one client's ledger against a bank balance.

        Missing dates fall back to the default window. No matching
        transactions is not an error: the sums are zero and the system
        balance equals the opening balance.
        """
        from_date, to_date = self.resolve_period(from_date, to_date)
        selected = self.filter_transactions(transactions, client_name, bank_name, from_date, to_date)

        return self.build_result(
            client_name=client_name,
            bank_name=bank_name,
            from_date=from_date,
            to_date=to_date,
            opening_balance=opening_balance,
            bank_balance=bank_balance,
            total_credit=self.sum_by_type(selected, TransactionType.CREDIT),
            total_debit=self.sum_by_type(selected, TransactionType.DEBIT),
            transaction_count=len(selected),
        )

    def zero_result(
        self,
        client_name: Optional[str],
        bank_name: Optional[str],
        from_date: Optional[date],
        to_date: Optional[date],
        opening_balance: Any = 0,
        bank_balance: Any = 0,
    ) -> ReconciliationResult:
        """Result with no transactions counted, used when a calculation cannot run."""
        return self.build_result(
            client_name=client_name or "",
            bank_name=bank_name,
            from_date=from_date,
            to_date=to_date,
            opening_balance=opening_balance,
            bank_balance=bank_balance,
            total_credit=Decimal("0.00"),
            total_debit=Decimal("0.00"),
            transaction_count=0,
        )

    # ==================== CROSS-CHECK ====================

    def cross_check(self, result: ReconciliationResult, transactions: Iterable[Any]) -> List[str]:
        """
        Recompute a result from the raw transactions.

        Returns a list of mismatch descriptions; empty when consistent.
        """
        problems = []
        selected = [
            txn for txn in transactions
            if result.from_date is not None and result.to_date is not None
            and self.matches(
                txn, result.client_name, result.bank_filter,
                result.from_date, result.to_date
            )
        ]

        credit = round_money(sum(
            float(t.amount) for t in selected if _enum_value(t.type) == TransactionType.CREDIT.value
        ))
        debit = round_money(sum(
            float(t.amount) for t in selected if _enum_value(t.type) == TransactionType.DEBIT.value
        ))

        if abs(credit - result.total_credit) >= CENT:
            problems.append(f"total credit {result.total_credit} != recomputed {credit}")
        if abs(debit - result.total_debit) >= CENT:
            problems.append(f"total debit {result.total_debit} != recomputed {debit}")
        if len(selected) != result.transaction_count:
            problems.append(f"transaction count {result.transaction_count} != recomputed {len(selected)}")

        expected_system = round_money(result.opening_balance + result.total_credit - result.total_debit)
        if expected_system != result.system_balance:
            problems.append(f"system balance {result.system_balance} != {expected_system}")

        expected_difference = round_money(result.system_balance - result.bank_balance)
        if expected_difference != result.difference:
            problems.append(f"difference {result.difference} != {expected_difference}")

        if self.classify(result.difference) != result.match_status:
            problems.append(f"status {result.match_status.value} inconsistent with difference {result.difference}")

        return problems


balance_rules = BalanceMatchingRules(get_settings().RECONCILIATION_DEFAULT_PERIOD_DAYS)
