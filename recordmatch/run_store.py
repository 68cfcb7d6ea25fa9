from datetime import UTC, datetime
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from recordmatch.db_models import MismatchRecord, ReconciliationRun, StepRun
from recordmatch.schemas import Mismatch, MissingTargetRow, ValidationResult


def utc_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def get_run_by_key(db: Session, run_key: str) -> ReconciliationRun | None:
    stmt = select(ReconciliationRun).where(ReconciliationRun.run_key == run_key)
    return db.execute(stmt).scalar_one_or_none()


def create_or_get_run(
    db: Session,
    *,
    run_key: str,
    trigger_source: str,
    source_path: str,
    target_path: str,
    mapping_path: str,
) -> tuple[ReconciliationRun, bool]:
    run = ReconciliationRun(
        run_key=run_key,
        trigger_source=trigger_source,
        status="queued",
        source_path=source_path,
        target_path=target_path,
        mapping_path=mapping_path,
    )
    db.add(run)
    try:
        db.commit()
    except IntegrityError:
        # run_key is unique, a second insert means the run already exists.
        db.rollback()
        existing = get_run_by_key(db, run_key)
        if existing:
            return existing, False
        raise

    db.refresh(run)
    return run, True


def reset_failed_run_state(db: Session, run: ReconciliationRun) -> None:
    db.execute(delete(StepRun).where(StepRun.run_id == run.id))
    db.execute(delete(MismatchRecord).where(MismatchRecord.run_id == run.id))

    run.status = "queued"
    run.validation_status = None
    run.report_path = None
    run.error = None
    run.completed_at = None
    run.source_count = 0
    run.target_count = 0
    run.mismatch_count = 0
    run.field_mapping_failures = 0
    run.duplicate_target_keys = 0
    db.commit()


def mark_run_running(db: Session, run: ReconciliationRun) -> None:
    run.status = "running"
    run.started_at = utc_now()
    run.error = None
    db.commit()


def mark_run_succeeded(
    db: Session,
    run: ReconciliationRun,
    *,
    result: ValidationResult,
    source_count: int,
    target_count: int,
    report_path: str,
) -> None:
    run.status = "succeeded"
    run.validation_status = result.status
    run.report_path = report_path
    run.source_count = source_count
    run.target_count = target_count
    run.mismatch_count = len(result.mismatched_records)
    run.field_mapping_failures = len(result.field_mapping_check)
    run.duplicate_target_keys = len(result.duplicate_target_keys)
    run.completed_at = utc_now()
    run.error = None
    db.commit()


def mark_run_failed(
    db: Session,
    run: ReconciliationRun,
    *,
    error: str,
    source_count: int = 0,
    target_count: int = 0,
) -> None:
    run.status = "failed"
    run.validation_status = None
    run.report_path = None
    run.error = error
    run.source_count = source_count
    run.target_count = target_count
    run.completed_at = utc_now()
    db.commit()


def create_step(db: Session, *, run_id: int, step_name: str) -> StepRun:
    step = StepRun(run_id=run_id, step_name=step_name, status="started", started_at=utc_now())
    db.add(step)
    db.commit()
    db.refresh(step)
    return step


def finish_step_success(db: Session, step: StepRun) -> None:
    finished_at = utc_now()
    step.status = "succeeded"
    step.completed_at = finished_at
    step.duration_ms = (finished_at - step.started_at).total_seconds() * 1000
    step.error = None
    db.commit()


def finish_step_failure(db: Session, step: StepRun, error: str) -> None:
    finished_at = utc_now()
    step.status = "failed"
    step.completed_at = finished_at
    step.duration_ms = (finished_at - step.started_at).total_seconds() * 1000
    step.error = error
    db.commit()


def _mismatch_row(run_id: int, position: int, mismatch: Mismatch) -> MismatchRecord:
    if isinstance(mismatch, MissingTargetRow):
        return MismatchRecord(run_id=run_id, position=position, record_key=mismatch.key, error=mismatch.error)
    return MismatchRecord(
        run_id=run_id,
        position=position,
        record_key=mismatch.key,
        field=mismatch.field,
        source_value=mismatch.source_value,
        target_value=mismatch.target_value,
    )


def store_mismatches(db: Session, *, run_id: int, mismatches: tuple[Mismatch, ...]) -> None:
    db.add_all(_mismatch_row(run_id, position, mismatch) for position, mismatch in enumerate(mismatches))
    db.commit()
