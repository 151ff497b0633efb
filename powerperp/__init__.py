"""
powerperp: margin ledger for a power perpetual

Settlement, balance accounting and forced unwinding (liquidation and
deleveraging) for a single perpetual market.
"""

__version__ = "0.1.0"
