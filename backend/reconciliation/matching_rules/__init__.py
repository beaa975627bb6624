"""
Matching Rules Module
"""

from .balance_rules import BalanceMatchingRules, balance_rules, ReconciliationResult

__all__ = ["BalanceMatchingRules", "balance_rules", "ReconciliationResult"]
