"""
Core perpetual ledger algorithms
"""

from .funding import FundingOracle
from .perpetual import PerpetualEngine

__all__ = [
    "FundingOracle",
    "PerpetualEngine",
]
