"""
Valid Sale Rules

Decides which ledger rows count as revenue-bearing sales.

A valid sale is a fulfilled order line with a positive value. Rows with
null, zero or negative amounts (refunds, reconciliation entries, pending or
cancelled orders) are excluded from revenue KPIs but stay in the raw ledger:
nothing here removes or rewrites a record.
"""

from typing import Any, Callable, Iterable, Iterator, List

from ledger_kpi.records import SalesRecord

VALID_STATUS_PREFIX = "Shipped"

RecordFilter = Callable[[Any], bool]


def is_valid_sale(record: Any) -> bool:
    """
    Return True iff the record's status starts with "Shipped" and its amount
    is strictly positive.

    The prefix match is case-sensitive so every "Shipped - ..." variant
    qualifies. Missing, null or non-numeric fields give False.
    """
    status = getattr(record, "status", None)
    if not isinstance(status, str) or not status.startswith(VALID_STATUS_PREFIX):
        return False

    amount = getattr(record, "amount", None)
    if amount is None or isinstance(amount, bool):
        return False
    try:
        # NaN compares False
        return bool(amount > 0)
    except TypeError:
        return False


class ValidSaleView:
    """
    Lazy view of the valid sales in a record sequence.

    The view holds a reference to the raw records and applies the predicate
    each time it is iterated; it never stores a filtered copy. Pass a
    re-iterable sequence if the view will be consumed more than once.

    Example:
        view = ValidSaleView(records)
        revenue = view.total_revenue()
    """

    def __init__(self, records: Iterable[SalesRecord], predicate: RecordFilter = is_valid_sale):
        self._records = records
        self._predicate = predicate

    def __iter__(self) -> Iterator[SalesRecord]:
        return (record for record in self._records if self._predicate(record))

    def count(self) -> int:
        """Number of valid-sale rows"""
        return sum(1 for _ in self)

    def total_revenue(self) -> float:
        """Unrounded sum of amount over the view"""
        return sum(record.amount for record in self)

    def materialize(self) -> List[SalesRecord]:
        """Return the underlying records that pass the predicate, in ledger order"""
        return list(self)


def valid_sales(records: Iterable[SalesRecord]) -> ValidSaleView:
    """Convenience constructor for the default valid-sale view"""
    return ValidSaleView(records)


def valid_sale_total(records: Iterable[SalesRecord]) -> float:
    """Grand total valid-sale revenue in a single pass, unrounded"""
    return ValidSaleView(records).total_revenue()


def export_valid_sales(records: Iterable[SalesRecord]) -> List[SalesRecord]:
    """
    Hand back the records behind the valid-sale view for external reprocessing.

    The same (immutable) record objects are returned; the input sequence is
    left untouched.
    """
    return ValidSaleView(records).materialize()
