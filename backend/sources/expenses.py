"""
Shared expense ledger (finances.expenses).
Both business lines read the same ledger, filtered by transaction_date.
"""

from datetime import datetime

from date_ranges import DateRange, parse_timestamp
from metrics.aggregator import parse_currency
from metrics.models import Expense
from sources.base import apply_date_window, fetch_all_pages


class ExpenseLedger:
    def __init__(self, client):
        """
        Args:
            client: supabase Client for the project that owns the finances schema.
        """
        self.client = client

    def _table(self):
        return self.client.schema("finances").table("expenses")

    @staticmethod
    def map_row(row: dict) -> Expense:
        return Expense(
            id=str(row["id"]) if row.get("id") is not None else None,
            transaction_date=parse_timestamp(row.get("transaction_date")),
            amount=parse_currency(row.get("amount")),
            expense_type=row.get("expense_type"),
            description=row.get("description"),
        )

    async def fetch_expenses(self, date_range: DateRange) -> list[Expense]:
        rows = await fetch_all_pages(
            lambda: apply_date_window(
                self._table().select("*"), "transaction_date", date_range
            ),
            label="finances.expenses",
        )
        return [self.map_row(r) for r in rows]

    async def fetch_expenses_since(self, start: datetime) -> list[Expense]:
        rows = await fetch_all_pages(
            lambda: self._table()
            .select("transaction_date, amount")
            .gte("transaction_date", start.isoformat()),
            label="finances.expenses",
        )
        return [self.map_row(r) for r in rows]
