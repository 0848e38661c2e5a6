"""
Error types for the supplier resolution pipeline.

Recoverable errors (ValidationError, RetrievalError, FusionConflict,
MergeWriteError, LinkageWriteError) are caught inside a run, logged and
counted in the run summary. StoreUnavailableError and
DeduplicationInProgress propagate to the caller.
"""


class SourcingError(Exception):
    """Base class for all supplier resolution errors"""


class ValidationError(SourcingError):
    """Input record is missing a required field (name or country)"""

    def __init__(self, record_id, field_name: str):
        self.record_id = record_id
        self.field_name = field_name
        super().__init__(f"Record {record_id!r} is missing required field '{field_name}'")


class RetrievalError(SourcingError):
    """A store query failed for one block or record"""


class StoreUnavailableError(SourcingError):
    """The record store cannot be reached at all"""


class FusionConflict(SourcingError):
    """A merge would absorb a record into itself or re-absorb a record"""


class MergeWriteError(SourcingError):
    """A write failed part-way through merging one duplicate"""

    def __init__(self, primary_id: str, duplicate_id: str, cause: Exception):
        self.primary_id = primary_id
        self.duplicate_id = duplicate_id
        self.cause = cause
        super().__init__(
            f"Failed to merge {duplicate_id} into {primary_id}: {cause}"
        )


class DeduplicationInProgress(SourcingError):
    """Another deduplication pass holds the run lock"""


class LinkageWriteError(SourcingError):
    """A write failed while linking one shipper to its supplier"""

    def __init__(self, shipper_key: str, supplier_id: str, cause: Exception):
        self.shipper_key = shipper_key
        self.supplier_id = supplier_id
        self.cause = cause
        super().__init__(
            f"Failed to link shipper {shipper_key!r} to {supplier_id}: {cause}"
        )
