"""
Pipeline Tracking Module
========================
Records deduplication and shipment-linkage runs in the pipeline_runs table.

Features:
- Context manager for automatic run tracking
- Metrics update helpers
- Status management (RUNNING, SUCCESS, FAILED, PARTIAL)

Usage:
    from sourcing.pipeline_tracking import track_pipeline_run, update_run_metrics

    with track_pipeline_run(db_manager, "deduplication", metadata={"threshold": 80}) as run_id:
        summary = run_deduplication(store, threshold=80)
        update_run_metrics(db_manager, run_id, rows_processed=summary.total_records)
"""

import json
import logging
import uuid
from contextlib import contextmanager
from typing import Optional, Dict, Any, Generator

logger = logging.getLogger(__name__)

PIPELINE_NAMES = ('deduplication', 'shipment_linkage')


@contextmanager
def track_pipeline_run(
    db_manager,
    pipeline_name: str,
    metadata: Optional[Dict[str, Any]] = None
) -> Generator[str, None, None]:
    """
    Context manager for tracking a pipeline run.

    Creates a RUNNING record on entry. On clean exit the status becomes
    SUCCESS unless the body already marked the run PARTIAL; on exception it
    becomes FAILED with the error message, and the exception propagates.

    Args:
        db_manager: DatabaseManager instance
        pipeline_name: One of PIPELINE_NAMES
        metadata: Additional JSON metadata to store

    Yields:
        run_id: UUID string of the created run record
    """
    if pipeline_name not in PIPELINE_NAMES:
        raise ValueError(f"Unknown pipeline: {pipeline_name}")

    run_id = str(uuid.uuid4())
    metadata_json = json.dumps(metadata) if metadata else None

    try:
        with db_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO pipeline_runs (run_id, pipeline_name, metadata)
                    VALUES (%s, %s, %s::jsonb)
                    """,
                    (run_id, pipeline_name, metadata_json)
                )
        logger.info(f"Pipeline run started: {pipeline_name} (run_id={run_id[:8]}...)")
    except Exception as e:
        logger.error(f"Failed to create pipeline run record: {e}")
        raise

    try:
        yield run_id

        with db_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE pipeline_runs
                    SET completed_at = NOW(),
                        status = CASE WHEN status = 'PARTIAL' THEN 'PARTIAL' ELSE 'SUCCESS' END
                    WHERE run_id = %s
                    """,
                    (run_id,)
                )
        logger.info(f"Pipeline run completed: {pipeline_name} (run_id={run_id[:8]}...)")

    except Exception as e:
        error_msg = str(e)[:1000]
        try:
            with db_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE pipeline_runs
                        SET completed_at = NOW(),
                            status = 'FAILED',
                            error_message = %s
                        WHERE run_id = %s
                        """,
                        (error_msg, run_id)
                    )
            logger.error(f"Pipeline run failed: {pipeline_name} (run_id={run_id[:8]}...) - {error_msg}")
        except Exception as db_error:
            logger.error(f"Failed to update pipeline run status: {db_error}")
        raise


def update_run_metrics(
    db_manager,
    run_id: str,
    rows_processed: Optional[int] = None,
    rows_created: Optional[int] = None,
    rows_updated: Optional[int] = None,
    rows_skipped: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> None:
    """
    Update metrics for a pipeline run.

    Only non-None values are updated. Metadata is merged into the existing
    JSONB document. Failures are logged, never raised: metrics must not
    fail a run that otherwise succeeded.
    """
    updates = []
    values = []

    for column, value in (
        ('rows_processed', rows_processed),
        ('rows_created', rows_created),
        ('rows_updated', rows_updated),
        ('rows_skipped', rows_skipped),
    ):
        if value is not None:
            updates.append(f"{column} = %s")
            values.append(value)

    if metadata is not None:
        updates.append("metadata = COALESCE(metadata, '{}'::jsonb) || %s::jsonb")
        values.append(json.dumps(metadata))

    if not updates:
        return

    values.append(run_id)
    set_clause = ", ".join(updates)

    try:
        with db_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"UPDATE pipeline_runs SET {set_clause} WHERE run_id = %s",
                    tuple(values)
                )
    except Exception as e:
        logger.warning(f"Failed to update run metrics: {e}")


def mark_run_partial(
    db_manager,
    run_id: str,
    error_message: Optional[str] = None
) -> None:
    """
    Mark a pipeline run as PARTIAL (some success, some failures).

    Used when merges or shipper pairs failed but the run itself finished.
    """
    try:
        with db_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE pipeline_runs
                    SET status = 'PARTIAL',
                        error_message = COALESCE(error_message, '') || %s
                    WHERE run_id = %s
                    """,
                    ((error_message or '')[:1000], run_id)
                )
        logger.warning(f"Pipeline run marked as PARTIAL: {run_id[:8]}...")
    except Exception as e:
        logger.error(f"Failed to mark run as partial: {e}")
