"""Derived metrics package."""

from moneystack.queries.networth import UNCATEGORIZED, NetWorthCalculator

__all__ = ["UNCATEGORIZED", "NetWorthCalculator"]
