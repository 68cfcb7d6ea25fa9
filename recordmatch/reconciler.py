from collections.abc import Sequence
import logging

from recordmatch.errors import ConfigError
from recordmatch.schemas import (
    STATUS_FAILED,
    STATUS_SUCCESS,
    DuplicateKey,
    FieldMapping,
    FieldMappingEntryResult,
    Mismatch,
    MissingTargetRow,
    Record,
    RowCountResult,
    ValidationResult,
    ValueMismatch,
)


logger = logging.getLogger(__name__)


def check_row_count(source_records: Sequence[Record], target_records: Sequence[Record]) -> RowCountResult:
    source_count = len(source_records)
    target_count = len(target_records)
    if source_count == target_count:
        return RowCountResult(status=STATUS_SUCCESS, source_count=source_count, target_count=target_count)
    return RowCountResult(
        status=STATUS_FAILED,
        source_count=source_count,
        target_count=target_count,
        message="Row count mismatch",
    )


def _missing_message(source_field: str, target_field: str, source_exists: bool, target_exists: bool) -> str:
    missing: list[str] = []
    if not source_exists:
        missing.append(f"source field: {source_field}")
    if not target_exists:
        missing.append(f"target field: {target_field}")
    return "Missing " + " and ".join(missing)


def check_field_mapping(
    source_records: Sequence[Record],
    target_records: Sequence[Record],
    mapping: FieldMapping,
) -> list[FieldMappingEntryResult]:
    # Only the first record of each side is consulted; schemas are assumed homogeneous.
    source_fields = set(source_records[0]) if source_records else set()
    target_fields = set(target_records[0]) if target_records else set()

    results: list[FieldMappingEntryResult] = []
    for source_field, target_field in mapping.items():
        source_exists = source_field in source_fields
        target_exists = target_field in target_fields
        if source_exists and target_exists:
            results.append(FieldMappingEntryResult(source_field, target_field, STATUS_SUCCESS, "Field mapping valid"))
            continue
        results.append(
            FieldMappingEntryResult(
                source_field,
                target_field,
                STATUS_FAILED,
                _missing_message(source_field, target_field, source_exists, target_exists),
            )
        )
    return results


def _target_key_field(mapping: FieldMapping, unique_key: str) -> str:
    if unique_key not in mapping:
        raise ConfigError(f"unique key '{unique_key}' is not a source field of the field mapping")
    return mapping[unique_key]


def build_target_lookup(
    target_records: Sequence[Record],
    mapping: FieldMapping,
    unique_key: str,
) -> dict[str | None, Record]:
    target_key_field = _target_key_field(mapping, unique_key)
    lookup: dict[str | None, Record] = {}
    for record in target_records:
        # Later records with the same key replace earlier ones.
        lookup[record.get(target_key_field)] = record
    return lookup


def find_duplicate_keys(
    target_records: Sequence[Record],
    mapping: FieldMapping,
    unique_key: str,
) -> list[DuplicateKey]:
    target_key_field = _target_key_field(mapping, unique_key)
    counts: dict[str | None, int] = {}
    for record in target_records:
        key = record.get(target_key_field)
        counts[key] = counts.get(key, 0) + 1
    return [DuplicateKey(key, count) for key, count in counts.items() if count > 1]


def check_values(
    source_records: Sequence[Record],
    target_records: Sequence[Record],
    mapping: FieldMapping,
    unique_key: str,
) -> list[Mismatch]:
    lookup = build_target_lookup(target_records, mapping, unique_key)

    mismatches: list[Mismatch] = []
    for source_record in source_records:
        key = source_record.get(unique_key)
        target_record = lookup.get(key)
        if target_record is None:
            mismatches.append(MissingTargetRow(key))
            continue

        for source_field, target_field in mapping.items():
            source_value = source_record.get(source_field)
            target_value = target_record.get(target_field)
            if source_value != target_value:
                mismatches.append(ValueMismatch(key, source_field, source_value, target_value))
    return mismatches


def reconcile(
    source_records: Sequence[Record],
    target_records: Sequence[Record],
    mapping: FieldMapping,
    unique_key: str,
    *,
    report_duplicates: bool = False,
) -> ValidationResult:
    """Compare source and target records on every mapped field.

    Data problems are collected into the returned result and never raised.
    The only error is a ``ConfigError`` when ``unique_key`` is not a key of
    ``mapping``, raised before any check runs.
    """
    _target_key_field(mapping, unique_key)

    row_count = check_row_count(source_records, target_records)
    field_mapping = [entry for entry in check_field_mapping(source_records, target_records, mapping) if entry.failed]
    mismatches = check_values(source_records, target_records, mapping, unique_key)
    duplicates = find_duplicate_keys(target_records, mapping, unique_key)

    if duplicates:
        logger.warning(
            "duplicate target keys found, last occurrence wins",
            extra={
                "target_key_field": mapping[unique_key],
                "duplicate_keys": len(duplicates),
                "reported": report_duplicates,
            },
        )

    return ValidationResult(
        row_count_check=row_count if row_count.failed else None,
        field_mapping_check=tuple(field_mapping),
        mismatched_records=tuple(mismatches),
        duplicate_target_keys=tuple(duplicates),
        report_duplicates=report_duplicates,
    )
