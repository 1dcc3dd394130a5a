"""
Ledger Record Model

One SalesRecord per order line of the raw sales ledger.
"""

from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, Optional


# Fields a ledger source must provide, in export order
RECORD_FIELDS = (
    "order_id",
    "status",
    "date",
    "category",
    "quantity",
    "amount",
    "ship_state",
    "is_b2b",
    "fulfilment",
)


@dataclass(frozen=True)
class SalesRecord:
    """
    A single ledger row.

    Records are immutable once loaded. ``order_id`` is not unique: an order
    with several line items appears once per line. ``quantity`` and
    ``amount`` may be null, zero or negative in raw data.
    """
    order_id: Optional[str]
    status: Optional[str]
    date: Optional[date]
    category: Optional[str]
    quantity: Optional[int]
    amount: Optional[float]
    ship_state: Optional[str] = None
    is_b2b: Optional[bool] = None
    fulfilment: Optional[str] = None

    @property
    def year_month(self) -> Optional[str]:
        """Calendar month of the transaction as YYYY-MM"""
        if self.date is None:
            return None
        return self.date.strftime("%Y-%m")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "SalesRecord":
        """Build a record from a mapping keyed by field name; unknown keys are ignored"""
        return cls(**{name: row.get(name) for name in RECORD_FIELDS})
