"""
PostgreSQL SupplierStore backed by psycopg2.

Tables (see db/schema_sourcing.sql):
- supplier
- supplier_hts_specialization   (rollups, UNIQUE (supplier_id, hts_code))
- shipment_record               (manifest lines, supplier_id set once linked)

psycopg2 errors are translated at this boundary: lost connections become
StoreUnavailableError, anything else on a read becomes RetrievalError.
Errors inside transaction() propagate unchanged after rollback so the
caller can decide how to report them.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

import psycopg2
from psycopg2.extensions import TransactionRollbackError
from psycopg2.extras import RealDictCursor

from sourcing.db_utils import DatabaseManager
from sourcing.errors import (
    DeduplicationInProgress,
    RetrievalError,
    StoreUnavailableError,
)
from sourcing.models import (
    CandidateRecord,
    LinkageRollup,
    SupplierRecord,
    TransactionRecord,
)
from sourcing.storage.base import FUSABLE_FIELDS

logger = logging.getLogger(__name__)

CANDIDATE_COLUMNS = "id, name, country_code, city, website, created_at"

SUPPLIER_COLUMNS = """
    id, name, country_code, city, website, email, phone, description,
    certifications, materials, hts_chapters, product_categories,
    reliability_score, quality_score, overall_score, created_at
"""

SPECIALIZATION_COLUMNS = """
    supplier_id, hts_code, shipment_count, total_quantity, total_value,
    last_shipment
"""

# Increment semantics: counters add, average is recomputed from the new
# totals, last shipment never moves backwards (GREATEST ignores NULLs)
UPSERT_ROLLUP_SQL = """
    INSERT INTO supplier_hts_specialization AS s (
        supplier_id, hts_code, shipment_count, total_quantity, total_value,
        avg_unit_value, last_shipment, created_at, updated_at
    )
    VALUES (%s, %s, %s, %s, %s,
            CASE WHEN %s::double precision > 0
                 THEN %s::double precision / %s::double precision
                 ELSE NULL END,
            %s, NOW(), NOW())
    ON CONFLICT (supplier_id, hts_code) DO UPDATE SET
        shipment_count = s.shipment_count + EXCLUDED.shipment_count,
        total_quantity = s.total_quantity + EXCLUDED.total_quantity,
        total_value = s.total_value + EXCLUDED.total_value,
        avg_unit_value = CASE
            WHEN s.total_quantity + EXCLUDED.total_quantity > 0
            THEN (s.total_value + EXCLUDED.total_value)
                 / (s.total_quantity + EXCLUDED.total_quantity)
            ELSE NULL
        END,
        last_shipment = GREATEST(s.last_shipment, EXCLUDED.last_shipment),
        updated_at = NOW()
"""

# Fold the duplicate's rows into the primary's rows with the same prefix
FOLD_SPECIALIZATIONS_SQL = """
    UPDATE supplier_hts_specialization AS p
    SET shipment_count = p.shipment_count + d.shipment_count,
        total_quantity = p.total_quantity + d.total_quantity,
        total_value = p.total_value + d.total_value,
        avg_unit_value = CASE
            WHEN p.total_quantity + d.total_quantity > 0
            THEN (p.total_value + d.total_value) / (p.total_quantity + d.total_quantity)
            ELSE NULL
        END,
        last_shipment = GREATEST(p.last_shipment, d.last_shipment),
        updated_at = NOW()
    FROM supplier_hts_specialization AS d
    WHERE p.supplier_id = %s
      AND d.supplier_id = %s
      AND p.hts_code = d.hts_code
"""

DELETE_FOLDED_SQL = """
    DELETE FROM supplier_hts_specialization AS d
    WHERE d.supplier_id = %s
      AND EXISTS (
          SELECT 1 FROM supplier_hts_specialization AS p
          WHERE p.supplier_id = %s AND p.hts_code = d.hts_code
      )
"""

ADVISORY_LOCK_SQL = "SELECT pg_try_advisory_lock(hashtext(%s))"
ADVISORY_UNLOCK_SQL = "SELECT pg_advisory_unlock(hashtext(%s))"


def _is_connection_failure(error: Exception) -> bool:
    if isinstance(error, psycopg2.InterfaceError):
        return True
    return (
        isinstance(error, psycopg2.OperationalError)
        and not isinstance(error, TransactionRollbackError)
    )


def _row_to_candidate(row: Dict[str, Any]) -> CandidateRecord:
    return CandidateRecord(
        id=row['id'],
        name=row['name'],
        country_code=row['country_code'],
        city=row.get('city'),
        website=row.get('website'),
        created_at=row.get('created_at'),
    )


def _row_to_rollup(row: Dict[str, Any]) -> LinkageRollup:
    return LinkageRollup(
        supplier_id=row['supplier_id'],
        product_code_prefix=row['hts_code'],
        shipment_count=row['shipment_count'] or 0,
        total_quantity=row['total_quantity'] or 0.0,
        total_value=row['total_value'] or 0.0,
        last_transaction_date=row.get('last_shipment'),
    )


def _row_to_supplier(row: Dict[str, Any], specializations: List[LinkageRollup]) -> SupplierRecord:
    return SupplierRecord(
        id=row['id'],
        name=row['name'],
        country_code=row['country_code'],
        city=row.get('city'),
        website=row.get('website'),
        email=row.get('email'),
        phone=row.get('phone'),
        description=row.get('description'),
        certifications=list(row.get('certifications') or []),
        materials=list(row.get('materials') or []),
        hts_chapters=list(row.get('hts_chapters') or []),
        product_categories=list(row.get('product_categories') or []),
        reliability_score=row.get('reliability_score'),
        quality_score=row.get('quality_score'),
        overall_score=row.get('overall_score'),
        created_at=row.get('created_at'),
        specializations=specializations,
    )


def _row_to_transaction(row: Dict[str, Any]) -> TransactionRecord:
    return TransactionRecord(
        id=str(row['id']),
        shipper_name=row['shipper_name'],
        shipper_country=row['shipper_country'],
        product_code=row['hts_code'],
        quantity=row.get('quantity'),
        declared_value=row.get('declared_value'),
        transaction_date=row.get('arrival_date'),
        supplier_id=row.get('supplier_id'),
    )


class PostgresSupplierStore:

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    @contextmanager
    def _read_cursor(self, action: str):
        try:
            with self.db_manager.get_cursor(cursor_factory=RealDictCursor) as cur:
                yield cur
        except psycopg2.Error as e:
            if _is_connection_failure(e):
                raise StoreUnavailableError(f"Record store unreachable while {action}: {e}") from e
            raise RetrievalError(f"Query failed while {action}: {e}") from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def count_suppliers(self) -> int:
        with self._read_cursor("counting suppliers") as cur:
            cur.execute("SELECT COUNT(*) AS n FROM supplier")
            return cur.fetchone()['n']

    def list_candidates(self) -> List[CandidateRecord]:
        with self._read_cursor("listing suppliers") as cur:
            cur.execute(f"SELECT {CANDIDATE_COLUMNS} FROM supplier ORDER BY created_at ASC, id ASC")
            return [_row_to_candidate(row) for row in cur.fetchall()]

    def find_candidates_by_country(self, country_code: str) -> List[CandidateRecord]:
        with self._read_cursor(f"loading block {country_code}") as cur:
            cur.execute(
                f"""
                SELECT {CANDIDATE_COLUMNS}
                FROM supplier
                WHERE country_code = %s
                ORDER BY created_at ASC, id ASC
                """,
                (country_code,)
            )
            return [_row_to_candidate(row) for row in cur.fetchall()]

    def get_supplier(self, supplier_id: str) -> Optional[SupplierRecord]:
        with self._read_cursor(f"fetching supplier {supplier_id}") as cur:
            cur.execute(f"SELECT {SUPPLIER_COLUMNS} FROM supplier WHERE id = %s", (supplier_id,))
            row = cur.fetchone()
            if row is None:
                return None

            cur.execute(
                f"""
                SELECT {SPECIALIZATION_COLUMNS}
                FROM supplier_hts_specialization
                WHERE supplier_id = %s
                ORDER BY hts_code
                """,
                (supplier_id,)
            )
            specializations = [_row_to_rollup(r) for r in cur.fetchall()]
            return _row_to_supplier(row, specializations)

    def distinct_shippers(self) -> List[Tuple[str, str]]:
        with self._read_cursor("enumerating shippers") as cur:
            cur.execute(
                """
                SELECT shipper_name, shipper_country, MIN(created_at) AS first_seen
                FROM shipment_record
                WHERE supplier_id IS NULL
                GROUP BY shipper_name, shipper_country
                ORDER BY first_seen ASC, shipper_name ASC
                """
            )
            return [(row['shipper_name'], row['shipper_country']) for row in cur.fetchall()]

    def transactions_for_shipper(self, shipper_name: str, shipper_country: str) -> List[TransactionRecord]:
        with self._read_cursor(f"loading shipments for {shipper_name}") as cur:
            cur.execute(
                """
                SELECT id, shipper_name, shipper_country, hts_code, quantity,
                       declared_value, arrival_date, supplier_id
                FROM shipment_record
                WHERE shipper_name = %s
                  AND shipper_country IS NOT DISTINCT FROM %s
                  AND supplier_id IS NULL
                ORDER BY arrival_date ASC NULLS FIRST, id ASC
                """,
                (shipper_name, shipper_country)
            )
            return [_row_to_transaction(row) for row in cur.fetchall()]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator['PostgresTransaction']:
        try:
            with self.db_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    yield PostgresTransaction(cur)
        except psycopg2.Error as e:
            if _is_connection_failure(e):
                raise StoreUnavailableError(f"Record store unreachable during write: {e}") from e
            raise

    @contextmanager
    def run_lock(self, lock_name: str) -> Iterator[None]:
        """Session-level advisory lock held on a dedicated pooled connection"""
        try:
            conn_pool = self.db_manager.get_connection_pool()
            conn = conn_pool.getconn()
        except psycopg2.Error as e:
            raise StoreUnavailableError(f"Record store unreachable: {e}") from e

        try:
            with conn.cursor() as cur:
                cur.execute(ADVISORY_LOCK_SQL, (lock_name,))
                acquired = cur.fetchone()[0]
            conn.commit()
            if not acquired:
                raise DeduplicationInProgress(f"A '{lock_name}' run is already in progress")

            logger.debug(f"Acquired run lock '{lock_name}'")
            try:
                yield
            finally:
                with conn.cursor() as cur:
                    cur.execute(ADVISORY_UNLOCK_SQL, (lock_name,))
                conn.commit()
                logger.debug(f"Released run lock '{lock_name}'")
        finally:
            conn_pool.putconn(conn)


class PostgresTransaction:
    """Unit of work bound to one cursor inside one database transaction"""

    def __init__(self, cur):
        self._cur = cur

    def update_supplier(self, supplier_id: str, fields: Dict[str, Any]) -> None:
        unknown = set(fields) - set(FUSABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields are not writable by a merge: {', '.join(sorted(unknown))}")
        if not fields:
            return

        columns = sorted(fields)
        set_clause = ", ".join(f"{column} = %s" for column in columns)
        self._cur.execute(
            f"UPDATE supplier SET {set_clause}, updated_at = NOW() WHERE id = %s",
            tuple(fields[column] for column in columns) + (supplier_id,)
        )
        if self._cur.rowcount != 1:
            raise LookupError(f"Supplier not found: {supplier_id}")

    def reparent_children(self, from_supplier_id: str, to_supplier_id: str) -> int:
        self._cur.execute(FOLD_SPECIALIZATIONS_SQL, (to_supplier_id, from_supplier_id))
        folded = self._cur.rowcount
        self._cur.execute(DELETE_FOLDED_SQL, (from_supplier_id, to_supplier_id))

        self._cur.execute(
            "UPDATE supplier_hts_specialization SET supplier_id = %s, updated_at = NOW() WHERE supplier_id = %s",
            (to_supplier_id, from_supplier_id)
        )
        moved = self._cur.rowcount

        self._cur.execute(
            "UPDATE shipment_record SET supplier_id = %s WHERE supplier_id = %s",
            (to_supplier_id, from_supplier_id)
        )
        return folded + moved + self._cur.rowcount

    def delete_supplier(self, supplier_id: str) -> None:
        self._cur.execute("DELETE FROM supplier WHERE id = %s", (supplier_id,))
        if self._cur.rowcount != 1:
            raise LookupError(f"Supplier not found: {supplier_id}")

    def upsert_rollup(self, rollup: LinkageRollup) -> None:
        self._cur.execute(
            UPSERT_ROLLUP_SQL,
            (
                rollup.supplier_id,
                rollup.product_code_prefix,
                rollup.shipment_count,
                rollup.total_quantity,
                rollup.total_value,
                rollup.total_quantity,
                rollup.total_value,
                rollup.total_quantity,
                rollup.last_transaction_date,
            )
        )

    def link_transactions(self, transaction_ids: List[str], supplier_id: str) -> List[str]:
        if not transaction_ids:
            return []
        self._cur.execute(
            """
            UPDATE shipment_record
            SET supplier_id = %s
            WHERE id = ANY(%s)
              AND supplier_id IS NULL
            RETURNING id
            """,
            (supplier_id, list(transaction_ids))
        )
        return [row[0] for row in self._cur.fetchall()]
