"""
Shared fixtures: in-memory supplier stores seeded with small populations.
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import date, datetime, timedelta

import pytest

from sourcing.models import LinkageRollup, SupplierRecord, TransactionRecord
from sourcing.storage import InMemorySupplierStore

BASE_TIME = datetime(2024, 1, 1, 9, 0, 0)


def make_supplier(supplier_id: str, name: str, country_code: str, minutes: int = 0, **fields) -> SupplierRecord:
    """Supplier created `minutes` after BASE_TIME."""
    return SupplierRecord(
        id=supplier_id,
        name=name,
        country_code=country_code,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        **fields
    )


def make_shipment(record_id: str, shipper_name: str, shipper_country: str, product_code: str,
                  quantity=None, declared_value=None, transaction_date=None) -> TransactionRecord:
    return TransactionRecord(
        id=record_id,
        shipper_name=shipper_name,
        shipper_country=shipper_country,
        product_code=product_code,
        quantity=quantity,
        declared_value=declared_value,
        transaction_date=transaction_date,
    )


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def duplicate_store():
    """Two Acme records in the US, one Acme in China, one unrelated US supplier."""
    return InMemorySupplierStore(suppliers=[
        make_supplier(
            'sup-acme-1', 'Acme Corp', 'US', minutes=0,
            website='https://www.acme.com',
            certifications=['ISO9001'],
            quality_score=4.0,
        ),
        make_supplier(
            'sup-acme-2', 'Acme Corporation', 'US', minutes=5,
            website='acme.com/about',
            email='sales@acme.com',
            certifications=['ISO9001', 'BSCI'],
            materials=['steel'],
            quality_score=4.5,
            reliability_score=3.9,
        ),
        make_supplier('sup-acme-cn', 'Acme Corp', 'CN', minutes=10),
        make_supplier('sup-bolt', 'Bolt Fasteners Inc', 'US', minutes=15),
    ])


@pytest.fixture
def chain_store():
    """
    Three same-city suppliers where A~B and B~C but A!~C.

    Names are identical, so the website domain decides each pair.
    """
    return InMemorySupplierStore(suppliers=[
        make_supplier('chain-a', 'Acme Corp', 'CN', minutes=0, city='Shenzhen', website='http://xxxx'),
        make_supplier('chain-b', 'Acme Corp', 'CN', minutes=1, city='Shenzhen', website='http://xxyy'),
        make_supplier('chain-c', 'Acme Corp', 'CN', minutes=2, city='Shenzhen', website='http://yyyy'),
    ])


@pytest.fixture
def linkage_store():
    """One Chinese supplier with an existing rollup plus unlinked shipments."""
    supplier = make_supplier(
        'sup-elite', 'Shenzhen Elite Electronics Ltd', 'CN',
        specializations=[LinkageRollup(
            supplier_id='sup-elite',
            product_code_prefix='851762',
            shipment_count=5,
            total_quantity=500.0,
            total_value=10000.0,
            last_transaction_date=date(2023, 11, 30),
        )],
    )
    shipments = [
        make_shipment('shp-1', 'Shenzhen Elite Electronics Co', 'China', '8517.62.0090',
                      quantity=100, declared_value=2500.0, transaction_date=date(2024, 1, 10)),
        make_shipment('shp-2', 'Shenzhen Elite Electronics Co', 'China', '851762',
                      quantity=50, declared_value=1500.0, transaction_date=date(2024, 2, 1)),
        make_shipment('shp-3', 'Shenzhen Elite Electronics Co', 'China', '9405.10',
                      quantity=None, declared_value=300.0, transaction_date=date(2023, 12, 1)),
        make_shipment('shp-4', 'Qingdao Harbor Seafood Processing', 'China', '0306.17',
                      quantity=20, declared_value=800.0, transaction_date=date(2024, 1, 5)),
        make_shipment('shp-5', 'Elite Electronics', 'Atlantis', '8517.62',
                      quantity=1, declared_value=10.0, transaction_date=date(2024, 1, 6)),
    ]
    return InMemorySupplierStore(suppliers=[supplier], transactions=shipments)
