from collections.abc import Mapping
from dataclasses import dataclass


Record = Mapping[str, str]
FieldMapping = Mapping[str, str]

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"

MISSING_TARGET_ROW = "Missing target row"


@dataclass(frozen=True)
class MappingConfig:
    field_mapping: dict[str, str]
    unique_key: str


@dataclass(frozen=True)
class RowCountResult:
    status: str
    source_count: int
    target_count: int
    message: str | None = None

    @property
    def failed(self) -> bool:
        return self.status == STATUS_FAILED

    def to_dict(self) -> dict[str, object]:
        if not self.failed:
            return {"status": self.status, "count": self.source_count}
        return {
            "status": self.status,
            "sourceCount": self.source_count,
            "targetCount": self.target_count,
            "message": self.message,
        }


@dataclass(frozen=True)
class FieldMappingEntryResult:
    source_field: str
    target_field: str
    status: str
    message: str

    @property
    def failed(self) -> bool:
        return self.status == STATUS_FAILED

    def to_dict(self) -> dict[str, object]:
        return {
            "sourceField": self.source_field,
            "targetField": self.target_field,
            "status": self.status,
            "message": self.message,
        }


@dataclass(frozen=True)
class MissingTargetRow:
    key: str | None
    error: str = MISSING_TARGET_ROW

    def to_dict(self) -> dict[str, object]:
        return {"key": self.key, "error": self.error}


@dataclass(frozen=True)
class ValueMismatch:
    key: str | None
    field: str
    source_value: str | None
    target_value: str | None

    def to_dict(self) -> dict[str, object]:
        return {
            "key": self.key,
            "field": self.field,
            "sourceValue": self.source_value,
            "targetValue": self.target_value,
        }


Mismatch = MissingTargetRow | ValueMismatch


@dataclass(frozen=True)
class DuplicateKey:
    key: str | None
    count: int

    def to_dict(self) -> dict[str, object]:
        return {"key": self.key, "count": self.count}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of one reconciliation.

    Sections hold only failures: ``row_count_check`` is None when counts
    match, and the tuples are empty when nothing was found. Duplicate
    target keys are always collected but only count against the status
    when ``report_duplicates`` is set.
    """

    row_count_check: RowCountResult | None = None
    field_mapping_check: tuple[FieldMappingEntryResult, ...] = ()
    mismatched_records: tuple[Mismatch, ...] = ()
    duplicate_target_keys: tuple[DuplicateKey, ...] = ()
    report_duplicates: bool = False

    @property
    def status(self) -> str:
        if (
            self.row_count_check is not None
            or self.field_mapping_check
            or self.mismatched_records
            or (self.report_duplicates and self.duplicate_target_keys)
        ):
            return STATUS_FAILED
        return STATUS_SUCCESS

    @property
    def missing_target_rows(self) -> int:
        return sum(1 for item in self.mismatched_records if isinstance(item, MissingTargetRow))

    @property
    def value_mismatches(self) -> int:
        return sum(1 for item in self.mismatched_records if isinstance(item, ValueMismatch))

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {}
        if self.row_count_check is not None:
            payload["rowCountCheck"] = self.row_count_check.to_dict()
        if self.field_mapping_check:
            payload["fieldMappingCheck"] = [entry.to_dict() for entry in self.field_mapping_check]
        if self.mismatched_records:
            payload["mismatchedRecords"] = [entry.to_dict() for entry in self.mismatched_records]
        if self.report_duplicates and self.duplicate_target_keys:
            payload["duplicateTargetKeys"] = [entry.to_dict() for entry in self.duplicate_target_keys]
        payload["status"] = self.status
        return payload


@dataclass(frozen=True)
class RunResult:
    run_id: int
    run_key: str
    trigger_source: str
    status: str
    validation_status: str | None
    source_count: int
    target_count: int
    mismatch_count: int
    field_mapping_failures: int
    duplicate_target_keys: int
    report_path: str | None
    reused_existing_run: bool
    error: str | None = None
