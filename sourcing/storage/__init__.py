"""
Record store adapters for supplier resolution.

Provides:
- SupplierStore / StoreTransaction protocols
- PostgresSupplierStore (psycopg2, production)
- InMemorySupplierStore (tests and local dry runs)
"""

from sourcing.storage.base import SupplierStore, StoreTransaction, FUSABLE_FIELDS
from sourcing.storage.memory import InMemorySupplierStore
from sourcing.storage.postgres import PostgresSupplierStore

__all__ = [
    'SupplierStore',
    'StoreTransaction',
    'FUSABLE_FIELDS',
    'InMemorySupplierStore',
    'PostgresSupplierStore',
]
