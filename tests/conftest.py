"""
Test Suite Configuration
"""
from datetime import date
from pathlib import Path
from typing import List

import pytest

from ledger_kpi.config import Settings
from ledger_kpi.ingestion import records_to_frame
from ledger_kpi.records import SalesRecord


def make_record(
    order_id="171-0000000-0000000",
    status="Shipped",
    day=date(2022, 4, 30),
    category="Set",
    quantity=1,
    amount=500.0,
    ship_state="MAHARASHTRA",
    is_b2b=False,
    fulfilment="Amazon",
) -> SalesRecord:
    """Build a ledger record with sensible defaults"""
    return SalesRecord(
        order_id=order_id,
        status=status,
        date=day,
        category=category,
        quantity=quantity,
        amount=amount,
        ship_state=ship_state,
        is_b2b=is_b2b,
        fulfilment=fulfilment,
    )


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(APP_ENV="testing", DEBUG=True)


@pytest.fixture
def sample_records() -> List[SalesRecord]:
    """
    Ten ledger rows: five valid sales across four orders, plus a cancelled
    row, a zero-amount row, a refund, a pending order and a lowercase status.
    """
    return [
        make_record("171-1", "Shipped", date(2022, 4, 30), "Set", 1, 647.62, "MAHARASHTRA", False, "Merchant"),
        make_record("171-2", "Shipped - Delivered to Buyer", date(2022, 4, 30), "kurta", 1, 406.0, "KARNATAKA", False, "Merchant"),
        make_record("171-3", "Shipped", date(2022, 4, 30), "Western Dress", 1, 753.33, "MAHARASHTRA", True, "Amazon"),
        make_record("171-3", "Shipped", date(2022, 4, 30), "Top", 1, 329.0, "MAHARASHTRA", True, "Amazon"),
        make_record("171-4", "Cancelled", date(2022, 4, 30), "Set", 0, None, "PUDUCHERRY", False, "Amazon"),
        make_record("171-5", "Shipped", date(2022, 5, 1), "Set", 1, 0.0, "TAMIL NADU", False, "Amazon"),
        make_record("171-6", "Shipped - Returned to Seller", date(2022, 5, 2), "kurta", 1, -150.0, "KARNATAKA", False, "Merchant"),
        make_record("171-7", "Pending", date(2022, 5, 3), "Set", 1, 500.0, "KARNATAKA", False, "Amazon"),
        make_record("171-8", "Shipped", date(2022, 5, 3), "Set", 2, 1200.0, "KARNATAKA", False, "Amazon"),
        make_record("171-9", "shipped", date(2022, 5, 3), "Set", 1, 999.0, "KARNATAKA", False, "Amazon"),
    ]


@pytest.fixture
def kurta_records() -> List[SalesRecord]:
    """Two line items of one shipped order, a cancellation and a zero-value row"""
    return [
        make_record("405-1", "Shipped", category="Kurta", amount=500.0),
        make_record("405-1", "Shipped", category="Kurta", amount=300.0),
        make_record("405-2", "Cancelled", category="Kurta", amount=-200.0),
        make_record("405-3", "Shipped", category="Kurta", amount=0.0),
    ]


@pytest.fixture
def sample_ledger_df(sample_records):
    """Sample records as a ledger frame"""
    return records_to_frame(sample_records)


@pytest.fixture
def sample_ledger_csv(tmp_path) -> Path:
    """Marketplace sales report CSV with the original column names"""
    content = "\n".join([
        "index,Order ID,Date,Status,Fulfilment,Sales Channel ,Category,Qty,Amount,ship-state,B2B,Unnamed: 22",
        "0,405-8078784-5731545,04-30-22,Cancelled,Merchant,Amazon.in,Set,0,647.62,MAHARASHTRA,False,",
        "1,171-9198151-1101146,04-30-22,Shipped - Delivered to Buyer,Merchant,Amazon.in,kurta,1,406.0,KARNATAKA,False,",
        "2,404-0687676-7273146,04-30-22,Shipped,Amazon,Amazon.in,kurta,1,329.0,MAHARASHTRA,True,False",
        "3,403-9615377-8133951,04-30-22,Cancelled,Merchant,Amazon.in,Western Dress,0,,PUDUCHERRY,False,",
        "4,407-1069790-7240320,05-01-22,Shipped,Amazon,Amazon.in,Top,2,574.0,TAMIL NADU,False,",
    ])
    path = tmp_path / "sales_report.csv"
    path.write_text(content + "\n", encoding="utf-8")
    return path


@pytest.fixture
def record_factory():
    """Factory for single ledger records"""
    return make_record
