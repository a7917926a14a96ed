"""
Metrics Source Factory.
Picks the source implementation for an explicit business-line tag.
"""

from .base import MetricsSource
from .eco4_source import ECO4Source
from .expenses import ExpenseLedger
from .solar_source import SolarSource

from business_line import BusinessLine


def create_source(business_line: str, solar_client=None, eco4_client=None) -> MetricsSource:
    """
    Factory function to create the metrics source for a business line.

    Args:
        business_line: 'solar' or 'eco4'
        solar_client: Client for the Solar project (also owns the expense ledger).
            Defaults to the shared process-wide client.
        eco4_client: Client for the ECO4 project. Defaults to the shared client.

    Returns:
        MetricsSource instance

    Raises:
        ValueError: If the business line is not supported
    """
    if not BusinessLine.is_valid(business_line):
        raise ValueError(f"Unsupported business line: {business_line}")

    if solar_client is None:
        from supabase_clients import get_solar_client
        solar_client = get_solar_client()
    ledger = ExpenseLedger(solar_client)

    if business_line == BusinessLine.SOLAR:
        return SolarSource(solar_client, ledger)

    if eco4_client is None:
        from supabase_clients import get_eco4_client
        eco4_client = get_eco4_client()
    return ECO4Source(eco4_client, ledger)


__all__ = [
    "MetricsSource",
    "SolarSource",
    "ECO4Source",
    "ExpenseLedger",
    "create_source",
]
