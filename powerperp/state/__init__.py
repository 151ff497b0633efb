"""
State collaborators for the perpetual ledger
"""

from .balances import TokenLedger
from .operators import OperatorRegistry

__all__ = [
    "TokenLedger",
    "OperatorRegistry",
]
