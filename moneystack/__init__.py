"""
MoneyStack - Source Package

Zero-knowledge client-side encryption for a personal net-worth and
budgeting application.

DESIGN PRINCIPLES:
1. Plaintext financial data never reaches storage
2. The key is derived from the user's password and never persisted
3. Fail loudly on a wrong key, degrade gracefully in list views
4. Every step must be auditable (without logging secrets)
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "MoneyStack Team"
