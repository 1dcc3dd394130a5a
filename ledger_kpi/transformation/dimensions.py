"""
Grouping Dimensions

A dimension is a named, pure extractor from a ledger record to a comparable
key. Group keys are tuples of extracted values, compared structurally.
"""

from dataclasses import dataclass, replace
from typing import Any, Callable, Collection, Sequence, Tuple, Union

from ledger_kpi.exceptions import InvalidDimensionError, MissingFieldError
from ledger_kpi.records import SalesRecord

Extractor = Callable[[SalesRecord], Any]


@dataclass(frozen=True)
class Dimension:
    """Named key extractor; ``field`` names the record attribute it depends on"""
    name: str
    extractor: Extractor
    field: str = ""

    def __call__(self, record: SalesRecord) -> Any:
        return self.extractor(record)


DimensionLike = Union[Dimension, Extractor]


def field_dimension(field: str, name: str = "") -> Dimension:
    """Dimension that reads a record attribute as-is"""
    return Dimension(name=name or field, extractor=lambda r: getattr(r, field), field=field)


CATEGORY = field_dimension("category")
SHIP_STATE = field_dimension("ship_state")
IS_B2B = field_dimension("is_b2b")
FULFILMENT = field_dimension("fulfilment")
STATUS = field_dimension("status")
DAY = field_dimension("date", name="day")
YEAR_MONTH = Dimension(name="year_month", extractor=lambda r: r.year_month, field="date")


def as_dimension(value: DimensionLike) -> Dimension:
    """Wrap a plain callable as a Dimension named after the function"""
    if isinstance(value, Dimension):
        return value
    if not callable(value):
        raise InvalidDimensionError(f"Dimension must be callable, got {type(value).__name__}")
    name = getattr(value, "__name__", "") or repr(value)
    return Dimension(name=name, extractor=value)


def resolve_dimensions(
    dimensions: Sequence[DimensionLike],
    reserved: Collection[str] = (),
) -> Tuple[Dimension, ...]:
    """
    Validate and normalize a dimension list.

    Names become result column names, so they must be unique and must not
    shadow a ``reserved`` column. Lambdas, duplicates and reserved names are
    renamed ``dim_<position>``.
    """
    if dimensions is None or len(dimensions) == 0:
        raise InvalidDimensionError("At least one grouping dimension is required")

    resolved = [as_dimension(d) for d in dimensions]
    taken = set(reserved)
    for i, dimension in enumerate(resolved):
        name = dimension.name
        if name == "<lambda>" or name in taken:
            name = f"dim_{i}"
            while name in taken:
                name = f"_{name}"
            resolved[i] = replace(dimension, name=name)
        taken.add(name)
    return tuple(resolved)


def extract_key(record: SalesRecord, dimensions: Sequence[Dimension]) -> Tuple[Any, ...]:
    """
    Build the group key of a record.

    Raises:
        InvalidDimensionError: an extractor raised on the record
        MissingFieldError: an extractor returned None
    """
    parts = []
    for dimension in dimensions:
        try:
            value = dimension(record)
        except Exception as e:
            raise InvalidDimensionError(
                f"Dimension '{dimension.name}' failed on record: {e}",
                dimension=dimension.name,
            ) from e
        if value is None:
            raise MissingFieldError(dimension.field or dimension.name)
        parts.append(value)
    return tuple(parts)
