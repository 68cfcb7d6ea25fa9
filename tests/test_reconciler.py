import pytest

from recordmatch.errors import ConfigError
from recordmatch.reconciler import (
    build_target_lookup,
    check_field_mapping,
    check_row_count,
    check_values,
    find_duplicate_keys,
    reconcile,
)
from recordmatch.schemas import DuplicateKey, MissingTargetRow, ValueMismatch


MAPPING = {"id": "id", "name": "full_name"}


def test_reconcile_success_has_no_optional_sections() -> None:
    source = [{"id": "1", "name": "Alice"}]
    target = [{"id": "1", "full_name": "Alice"}]

    result = reconcile(source, target, MAPPING, "id")

    assert result.status == "success"
    assert result.to_dict() == {"status": "success"}


def test_reconcile_reports_value_mismatch() -> None:
    source = [{"id": "1", "name": "Alice"}]
    target = [{"id": "1", "full_name": "Bob"}]

    result = reconcile(source, target, MAPPING, "id")

    assert result.to_dict() == {
        "mismatchedRecords": [{"key": "1", "field": "name", "sourceValue": "Alice", "targetValue": "Bob"}],
        "status": "failed",
    }


def test_reconcile_empty_target_still_checks_values() -> None:
    source = [{"id": "1"}]
    target: list[dict[str, str]] = []

    payload = reconcile(source, target, MAPPING, "id").to_dict()

    assert payload["rowCountCheck"] == {
        "status": "failed",
        "sourceCount": 1,
        "targetCount": 0,
        "message": "Row count mismatch",
    }
    assert payload["mismatchedRecords"] == [{"key": "1", "error": "Missing target row"}]
    assert [entry["sourceField"] for entry in payload["fieldMappingCheck"]] == ["id", "name"]
    assert payload["status"] == "failed"


def test_reconcile_sections_keep_report_order() -> None:
    source = [{"id": "1", "name": "Alice"}, {"id": "2", "name": "Ben"}]
    target = [{"id": "1", "full_name": "Alicia"}]

    payload = reconcile(source, target, MAPPING, "id").to_dict()

    assert list(payload) == ["rowCountCheck", "mismatchedRecords", "status"]


def test_reconcile_rejects_unique_key_outside_mapping() -> None:
    with pytest.raises(ConfigError, match="customer_id"):
        reconcile([{"customer_id": "1"}], [{"customer_id": "1"}], MAPPING, "customer_id")


def test_row_count_success_carries_shared_count() -> None:
    result = check_row_count([{"id": "1"}, {"id": "2"}], [{"id": "2"}, {"id": "1"}])

    assert result.failed is False
    assert result.to_dict() == {"status": "success", "count": 2}


def test_row_count_mismatch_reports_both_counts() -> None:
    result = check_row_count([{"id": "1"}, {"id": "2"}], [{"id": "1"}])

    assert result.failed is True
    assert result.source_count == 2
    assert result.target_count == 1
    assert result.message == "Row count mismatch"


def test_field_mapping_messages_name_missing_fields() -> None:
    source = [{"id": "1", "name": "Alice", "city": "Oslo"}]
    target = [{"id": "1", "full_name": "Alice", "email": "a@example.com"}]
    mapping = {
        "id": "id",
        "email": "email",
        "city": "town",
        "phone": "mobile",
    }

    results = check_field_mapping(source, target, mapping)

    assert [(entry.status, entry.message) for entry in results] == [
        ("success", "Field mapping valid"),
        ("failed", "Missing source field: email"),
        ("failed", "Missing target field: town"),
        ("failed", "Missing source field: phone and target field: mobile"),
    ]


def test_field_mapping_only_consults_first_record() -> None:
    source = [{"id": "1"}, {"id": "2", "name": "Ben"}]
    target = [{"id": "1", "full_name": "Ann"}]

    results = check_field_mapping(source, target, MAPPING)

    assert results[1].failed
    assert results[1].message == "Missing source field: name"


def test_field_mapping_fails_every_entry_for_empty_inputs() -> None:
    results = check_field_mapping([], [], MAPPING)

    assert all(entry.failed for entry in results)
    assert results[0].message == "Missing source field: id and target field: id"


def test_missing_target_row_skips_field_comparison() -> None:
    source = [{"id": "7", "name": "Grace"}]
    target = [{"id": "1", "full_name": "Alice"}]

    mismatches = check_values(source, target, MAPPING, "id")

    assert mismatches == [MissingTargetRow("7")]


def test_values_are_compared_as_exact_strings() -> None:
    source = [{"id": "1", "name": "alice", "amount": "1.0"}]
    target = [{"id": "1", "full_name": "Alice", "total": "1"}]
    mapping = {"id": "id", "name": "full_name", "amount": "total"}

    mismatches = check_values(source, target, mapping, "id")

    assert mismatches == [
        ValueMismatch("1", "name", "alice", "Alice"),
        ValueMismatch("1", "amount", "1.0", "1"),
    ]


def test_mismatches_follow_source_then_mapping_order() -> None:
    source = [
        {"id": "2", "name": "Ben", "city": "Rome"},
        {"id": "1", "name": "Ann", "city": "Oslo"},
        {"id": "3", "name": "Cy", "city": "Lima"},
    ]
    target = [
        {"id": "1", "full_name": "Anne", "town": "Bergen"},
        {"id": "2", "full_name": "Benny", "town": "Rome"},
    ]
    mapping = {"id": "id", "name": "full_name", "city": "town"}

    mismatches = check_values(source, target, mapping, "id")

    assert [entry.to_dict() for entry in mismatches] == [
        {"key": "2", "field": "name", "sourceValue": "Ben", "targetValue": "Benny"},
        {"key": "1", "field": "name", "sourceValue": "Ann", "targetValue": "Anne"},
        {"key": "1", "field": "city", "sourceValue": "Oslo", "targetValue": "Bergen"},
        {"key": "3", "error": "Missing target row"},
    ]


def test_target_lookup_uses_mapped_key_field() -> None:
    source = [{"customer_id": "42", "name": "Ada"}]
    target = [{"cust_no": "42", "full_name": "Ada"}]
    mapping = {"customer_id": "cust_no", "name": "full_name"}

    assert check_values(source, target, mapping, "customer_id") == []


def test_absent_fields_compare_as_none() -> None:
    source = [{"id": "1", "name": "Alice"}]
    target = [{"id": "1"}]

    mismatches = check_values(source, target, MAPPING, "id")

    assert mismatches == [ValueMismatch("1", "name", "Alice", None)]
    assert mismatches[0].to_dict()["targetValue"] is None


def test_duplicate_target_keys_last_occurrence_wins() -> None:
    source = [{"id": "1", "name": "Second"}, {"id": "1", "name": "Second"}]
    target = [
        {"id": "1", "full_name": "First"},
        {"id": "1", "full_name": "Second"},
    ]

    lookup = build_target_lookup(target, MAPPING, "id")
    result = reconcile(source, target, MAPPING, "id")

    assert lookup["1"] is target[1]
    assert result.mismatched_records == ()
    assert result.duplicate_target_keys == (DuplicateKey("1", 2),)
    assert result.to_dict() == {"status": "success"}


def test_duplicate_target_keys_hide_earlier_records() -> None:
    source = [{"id": "1", "name": "First"}]
    target = [
        {"id": "1", "full_name": "First"},
        {"id": "1", "full_name": "Second"},
    ]

    mismatches = check_values(source, target, MAPPING, "id")

    assert mismatches == [ValueMismatch("1", "name", "First", "Second")]


def test_reported_duplicate_keys_fail_the_result() -> None:
    source = [{"id": "1", "name": "Ann"}, {"id": "1", "name": "Ann"}]
    target = [{"id": "1", "full_name": "Ann"}, {"id": "1", "full_name": "Ann"}]

    result = reconcile(source, target, MAPPING, "id", report_duplicates=True)

    assert result.row_count_check is None
    assert result.mismatched_records == ()
    assert result.to_dict() == {
        "duplicateTargetKeys": [{"key": "1", "count": 2}],
        "status": "failed",
    }


def test_find_duplicate_keys_counts_in_first_seen_order() -> None:
    target = [{"id": value} for value in ["b", "a", "b", "c", "a", "b"]]

    assert find_duplicate_keys(target, {"id": "id"}, "id") == [DuplicateKey("b", 3), DuplicateKey("a", 2)]


def test_field_mapping_failure_alone_fails_the_result() -> None:
    source = [{"id": "1"}]
    target = [{"id": "1"}]
    mapping = {"id": "id", "note": "remark"}

    result = reconcile(source, target, mapping, "id")

    assert result.row_count_check is None
    assert result.mismatched_records == ()
    assert result.to_dict() == {
        "fieldMappingCheck": [
            {
                "sourceField": "note",
                "targetField": "remark",
                "status": "failed",
                "message": "Missing source field: note and target field: remark",
            }
        ],
        "status": "failed",
    }
