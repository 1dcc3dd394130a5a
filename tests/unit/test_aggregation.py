"""
Unit Tests - Aggregation Engine
"""
import polars as pl
import pytest

from ledger_kpi.exceptions import EmptyGroupError, InvalidDimensionError
from ledger_kpi.quality.validity import export_valid_sales, valid_sale_total
from ledger_kpi.transformation.aggregation import (
    aggregate,
    compute_aov,
    compute_asp,
    compute_share,
    round_half_up,
)
from ledger_kpi.transformation.dimensions import (
    CATEGORY,
    FULFILMENT,
    IS_B2B,
    SHIP_STATE,
    YEAR_MONTH,
    Dimension,
)


class TestMetricHelpers:
    """Tests for rounding and ratio helpers"""

    def test_round_half_up(self):
        """Halves round away from zero on the decimal value"""
        assert round_half_up(2.675) == 2.68
        assert round_half_up(-1.005) == -1.01
        assert round_half_up(711.1749) == 711.17
        assert round_half_up(5, 0) == 5.0

    def test_compute_aov(self):
        """AOV divides by distinct orders"""
        assert compute_aov(800.0, 1) == 800.0
        assert compute_aov(1000.0, 3) == 333.33

    def test_zero_orders_signals(self):
        """AOV with no orders raises instead of dividing"""
        with pytest.raises(EmptyGroupError) as exc_info:
            compute_aov(100.0, 0, group_key=("Set",))
        assert exc_info.value.metric == "aov"
        assert exc_info.value.group_key == ("Set",)

    def test_zero_units_signals(self):
        """ASP with no units raises instead of dividing"""
        with pytest.raises(EmptyGroupError) as exc_info:
            compute_asp(100.0, 0)
        assert exc_info.value.metric == "avg_selling_price"

    def test_zero_grand_total_signals(self):
        """Share of an empty total is undefined"""
        with pytest.raises(EmptyGroupError):
            compute_share(10.0, 0.0)


class TestAggregate:
    """Tests for aggregate"""

    def test_kurta_scenario(self, kurta_records):
        """Only the two shipped line items of one order are aggregated"""
        result = aggregate(kurta_records, [CATEGORY])

        assert list(result.keys()) == [("Kurta",)]
        kurta = result[("Kurta",)]
        assert kurta.revenue == 800.0
        assert kurta.order_count == 1
        assert kurta.unit_count == 2
        assert kurta.aov == 800.0
        assert kurta.avg_selling_price == 400.0
        assert kurta.revenue_share_pct == 100.0
        assert result.records_filtered_out == 2

    def test_order_count_is_distinct(self, record_factory):
        """Two line items sharing an order id count as one order"""
        records = [
            record_factory(order_id="A", category="Set", amount=100.0),
            record_factory(order_id="A", category="Set", amount=200.0),
            record_factory(order_id="B", category="Set", amount=300.0),
        ]
        result = aggregate(records, [CATEGORY])

        assert result[("Set",)].order_count == 2
        assert result[("Set",)].aov == 300.0

    def test_category_metrics(self, sample_records):
        """Metrics for a category spanning two orders"""
        result = aggregate(sample_records, [CATEGORY])

        assert set(result.keys()) == {("Set",), ("kurta",), ("Western Dress",), ("Top",)}
        group = result[("Set",)]
        assert group.revenue == 1847.62
        assert group.order_count == 2
        assert group.unit_count == 3
        assert group.aov == 923.81
        assert group.avg_selling_price == 615.87
        assert group.revenue_share_pct == 55.39
        assert group.record_count == 2

    def test_multiple_dimensions(self, sample_records):
        """Keys are tuples in dimension order"""
        result = aggregate(sample_records, [YEAR_MONTH, CATEGORY])

        assert result.dimensions == ("year_month", "category")
        assert result[("2022-04", "Set")].revenue == 647.62
        assert result[("2022-05", "Set")].revenue == 1200.0
        assert ("2022-05", "kurta") not in result

    def test_channel_dimensions(self, sample_records):
        """Boolean and enum-like channels group like any other key"""
        b2b = aggregate(sample_records, [IS_B2B])
        assert b2b[(True,)].revenue == 1082.33
        assert b2b[(True,)].order_count == 1
        assert b2b[(False,)].aov == 751.21

        fulfilment = aggregate(sample_records, [FULFILMENT])
        assert fulfilment[("Merchant",)].revenue == 1053.62
        assert fulfilment[("Amazon",)].revenue == 2282.33

    def test_plain_callable_dimension(self, sample_records):
        """Extractor functions work without a Dimension wrapper"""
        def upper_category(record):
            return record.category.upper()

        result = aggregate(sample_records, [upper_category])

        assert result.dimensions == ("upper_category",)
        assert ("KURTA",) in result

    def test_lambda_dimensions_keep_their_columns(self, sample_records):
        """Anonymous extractors get positional names, so no key column is lost"""
        result = aggregate(sample_records, [lambda r: r.category, lambda r: r.ship_state])

        assert result.dimensions == ("dim_0", "dim_1")
        row = result.to_rows()[0]
        assert row["dim_0"] == "Set"
        assert row["dim_1"] == "KARNATAKA"

        df = result.to_frame()
        assert {"dim_0", "dim_1"} <= set(df.columns)
        assert df.height == 5
        assert set(zip(df["dim_0"].to_list(), df["dim_1"].to_list())) == set(result.keys())

    def test_dimension_names_never_shadow_metrics(self, sample_records):
        """Duplicate names and metric names are renamed by position"""
        by_revenue = Dimension(name="revenue", extractor=lambda r: r.category)
        result = aggregate(sample_records, [CATEGORY, by_revenue, CATEGORY])

        assert result.dimensions == ("category", "dim_1", "dim_2")
        row = result.to_rows(order_by="revenue")[0]
        assert row["dim_1"] == "Set"
        assert row["revenue"] == 1847.62

    def test_lambda_missing_fields_tallied_separately(self, record_factory):
        """Skipped records are counted per anonymous dimension"""
        records = [
            record_factory(order_id="1", category=None),
            record_factory(order_id="2", ship_state=None),
            record_factory(order_id="3"),
        ]
        result = aggregate(records, [lambda r: r.category, lambda r: r.ship_state])

        assert result.skipped == {"dim_0": 1, "dim_1": 1}
        assert len(result) == 1

    def test_revenue_conservation(self, sample_records):
        """Group revenues add up to the valid-sale total for any dimension"""
        total = valid_sale_total(sample_records)
        for dimension in (CATEGORY, SHIP_STATE, YEAR_MONTH, IS_B2B, FULFILMENT):
            result = aggregate(sample_records, [dimension])
            group_sum = sum(g.revenue for g in result.values())
            assert abs(group_sum - total) <= 0.01 * len(result)

    def test_share_conservation(self, sample_records):
        """Shares of a single-dimension aggregation add up to ~100"""
        for dimension in (CATEGORY, SHIP_STATE, YEAR_MONTH, IS_B2B, FULFILMENT):
            result = aggregate(sample_records, [dimension])
            assert abs(sum(g.revenue_share_pct for g in result.values()) - 100.0) <= 0.1

    def test_filter_idempotence(self, sample_records):
        """Re-applying the filter to the exported view changes nothing"""
        once = aggregate(sample_records, [CATEGORY])
        twice = aggregate(export_valid_sales(sample_records), [CATEGORY])

        assert once.groups == twice.groups
        assert once.grand_total_revenue == twice.grand_total_revenue

    def test_custom_filter_shares_use_valid_total(self, sample_records):
        """Share denominator stays the valid-sale total whatever the filter"""
        result = aggregate(
            sample_records,
            [CATEGORY],
            filter=lambda r: r.amount is not None and r.amount < 0,
        )

        assert list(result.keys()) == [("kurta",)]
        assert result[("kurta",)].revenue == -150.0
        assert result[("kurta",)].revenue_share_pct == -4.5
        assert result.grand_total_revenue == 3335.95

    def test_zero_units_reported_per_group(self, record_factory):
        """A group with no units gets an undefined ASP; other groups resolve"""
        records = [
            record_factory(order_id="A", category="Saree", quantity=0, amount=100.0),
            record_factory(order_id="B", category="Set", quantity=2, amount=300.0),
        ]
        result = aggregate(records, [CATEGORY])

        saree = result[("Saree",)]
        assert saree.avg_selling_price is None
        assert saree.aov == 100.0
        assert result[("Set",)].avg_selling_price == 150.0

        assert len(result.empty_groups) == 1
        error = result.empty_groups[0]
        assert isinstance(error, EmptyGroupError)
        assert error.metric == "avg_selling_price"
        assert error.group_key == ("Saree",)

    def test_missing_field_skipped_and_counted(self, record_factory):
        """Records without a dimension value are tallied, not bucketed"""
        records = [
            record_factory(order_id="A", category=None, amount=100.0),
            record_factory(order_id="B", category="Set", amount=300.0),
            record_factory(order_id="C", category="Set", quantity=None, amount=50.0),
        ]
        result = aggregate(records, [CATEGORY])

        assert list(result.keys()) == [("Set",)]
        assert result[("Set",)].revenue == 300.0
        assert result.skipped == {"category": 1, "quantity": 1}
        assert result.skipped_total == 2
        # Skipped rows still belong to the valid-sale total
        assert result[("Set",)].revenue_share_pct == pytest.approx(66.67)

    def test_no_dimensions_rejected(self, sample_records):
        """Grouping by nothing is a configuration error"""
        with pytest.raises(InvalidDimensionError):
            aggregate(sample_records, [])

    def test_failing_extractor_surfaces(self, sample_records):
        """An extractor that raises aborts the call with InvalidDimensionError"""
        broken = Dimension(name="broken", extractor=lambda r: r.no_such_field)

        with pytest.raises(InvalidDimensionError) as exc_info:
            aggregate(sample_records, [broken])
        assert exc_info.value.dimension == "broken"

    def test_non_callable_dimension_rejected(self, sample_records):
        """Dimensions must be callables"""
        with pytest.raises(InvalidDimensionError):
            aggregate(sample_records, ["category"])

    def test_parallel_matches_serial(self, sample_records):
        """Partitioned grouping merges to the same result"""
        serial = aggregate(sample_records, [SHIP_STATE, CATEGORY])
        parallel = aggregate(sample_records, [SHIP_STATE, CATEGORY], max_workers=4)

        assert parallel.groups == serial.groups
        assert parallel.records_seen == serial.records_seen == 10
        assert parallel.records_filtered_out == serial.records_filtered_out == 5

    def test_parallel_surfaces_extractor_errors(self, sample_records):
        """Worker errors propagate to the caller"""
        broken = Dimension(name="broken", extractor=lambda r: 1 / 0)

        with pytest.raises(InvalidDimensionError):
            aggregate(sample_records, [broken], max_workers=3)

    def test_input_not_mutated(self, sample_records):
        """Aggregation is pure"""
        before = list(sample_records)
        aggregate(sample_records, [CATEGORY])
        assert sample_records == before

    def test_accepts_iterators(self, sample_records):
        """One-shot iterables are supported"""
        result = aggregate(iter(sample_records), [CATEGORY])
        assert result[("Set",)].revenue == 1847.62

    def test_fresh_result_per_call(self, sample_records):
        """Results are never shared between calls"""
        first = aggregate(sample_records, [CATEGORY])
        second = aggregate(sample_records, [CATEGORY])
        assert first is not second
        assert first.groups is not second.groups


class TestAggregationResult:
    """Tests for ranking and serialization of results"""

    def test_sorted_by_revenue(self, sample_records):
        """Descending revenue ranking"""
        result = aggregate(sample_records, [CATEGORY])
        ranked = [g.key for g in result.sorted_by("revenue")]

        assert ranked == [("Set",), ("Western Dress",), ("kurta",), ("Top",)]

    def test_ties_break_on_key(self, record_factory):
        """Equal metrics keep ascending key order in both directions"""
        records = [
            record_factory(order_id="1", category="Top", amount=100.0),
            record_factory(order_id="2", category="Blouse", amount=100.0),
            record_factory(order_id="3", category="Saree", amount=100.0),
        ]
        result = aggregate(records, [CATEGORY])

        expected = [("Blouse",), ("Saree",), ("Top",)]
        assert [g.key for g in result.sorted_by("revenue")] == expected
        assert [g.key for g in result.sorted_by("revenue", descending=False)] == expected

    def test_undefined_metric_sorts_last(self, record_factory):
        """Groups without an ASP come after every ranked group"""
        records = [
            record_factory(order_id="1", category="Blouse", quantity=0, amount=900.0),
            record_factory(order_id="2", category="Set", quantity=1, amount=100.0),
        ]
        result = aggregate(records, [CATEGORY])

        for descending in (True, False):
            ranked = result.sorted_by("avg_selling_price", descending=descending)
            assert [g.key for g in ranked] == [("Set",), ("Blouse",)]

    def test_top_limits(self, sample_records):
        """Top-n cut-off"""
        result = aggregate(sample_records, [CATEGORY])
        top = result.top(2, by="aov")

        assert [g.key for g in top] == [("Set",), ("Western Dress",)]

    def test_top_zero_is_empty(self, sample_records, test_settings):
        """An explicit zero cut-off is not replaced by the configured default"""
        result = aggregate(sample_records, [CATEGORY])

        assert result.top(0) == []
        assert len(result.top()) == min(len(result), test_settings.kpi.top_n)

    def test_unknown_metric(self, sample_records):
        """Ranking by an unknown metric is rejected"""
        result = aggregate(sample_records, [CATEGORY])
        with pytest.raises(ValueError):
            result.sorted_by("margin")

    def test_to_rows(self, sample_records):
        """Rows carry one column per dimension plus the metrics"""
        result = aggregate(sample_records, [YEAR_MONTH, CATEGORY])
        rows = result.to_rows()

        assert rows[0]["year_month"] == "2022-04"
        assert set(rows[0]) >= {"year_month", "category", "revenue", "order_count", "aov"}
        assert "key" not in rows[0]

    def test_to_frame(self, sample_records):
        """Result table as a Polars DataFrame"""
        df = aggregate(sample_records, [CATEGORY]).to_frame(order_by="revenue")

        assert isinstance(df, pl.DataFrame)
        assert df.height == 4
        assert df["category"].to_list()[0] == "Set"
        assert "revenue_share_pct" in df.columns

    def test_empty_to_frame(self, record_factory):
        """An aggregation with no groups still has the table columns"""
        result = aggregate([record_factory(status="Cancelled")], [CATEGORY])

        df = result.to_frame()
        assert df.height == 0
        assert "category" in df.columns
        assert "revenue" in df.columns

    def test_total_revenue(self, sample_records):
        """Sum of group revenue"""
        result = aggregate(sample_records, [SHIP_STATE])
        assert result.total_revenue() == 3335.95
