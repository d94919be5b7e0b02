"""
Net Worth Calculations

DESIGN DECISION: Aggregation is done HERE, over decrypted records, never
in storage. Protected rows store zero in their balance/amount columns, so
any server-side sum would be meaningless by construction.

Placeholders (records that failed to decrypt) are excluded from every
total rather than counted as zero, and reported so the UI can say the
numbers are incomplete.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from moneystack.models.records import (
    Account,
    AccountClassification,
    NetWorthSnapshot,
    Transaction,
)


UNCATEGORIZED = "Uncategorized"


class NetWorthCalculator:
    """
    Computes derived metrics from plaintext accounts and transactions.

    GUARANTEES:
    - Only uses records that decrypted successfully
    - Hidden accounts never count toward net worth
    """

    def snapshot(self, accounts: Iterable[Account]) -> NetWorthSnapshot:
        """Total assets, total liabilities and net worth."""
        assets = Decimal("0")
        liabilities = Decimal("0")
        included = 0
        excluded = 0

        for account in accounts:
            if account.is_placeholder or not account.is_active:
                excluded += 1
                continue
            included += 1
            if account.classification == AccountClassification.LIABILITY:
                # Providers report debt with either sign
                liabilities += abs(account.balance)
            else:
                assets += account.balance

        return NetWorthSnapshot(
            total_assets=assets,
            total_liabilities=liabilities,
            net_worth=assets - liabilities,
            account_count=included,
            excluded_count=excluded,
        )

    def spending_by_category(
        self,
        transactions: Iterable[Transaction],
    ) -> dict[str, Decimal]:
        """
        Outflows per category, as positive amounts.

        Inflows (amount >= 0) and placeholders are skipped.
        """
        totals: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for transaction in transactions:
            if transaction.is_placeholder or transaction.amount >= 0:
                continue
            totals[transaction.category_name or UNCATEGORIZED] += -transaction.amount
        return dict(totals)
