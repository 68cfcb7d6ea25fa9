from collections.abc import Callable
import logging
from pathlib import Path
from typing import TypeVar

from sqlalchemy.orm import Session, sessionmaker

from recordmatch.config import Settings
from recordmatch.db_models import ReconciliationRun
from recordmatch.reconciler import reconcile
from recordmatch.reports import write_report
from recordmatch.run_store import (
    create_or_get_run,
    create_step,
    finish_step_failure,
    finish_step_success,
    mark_run_failed,
    mark_run_running,
    mark_run_succeeded,
    reset_failed_run_state,
    store_mismatches,
)
from recordmatch.schemas import RunResult
from recordmatch.sources import load_mapping_config, read_sources


logger = logging.getLogger(__name__)
T = TypeVar("T")


class ReconciliationRunner:
    """Runs one reconciliation end to end and records it in the run ledger.

    A run is identified by its ``run_key``. Asking for a key that already
    finished returns the stored outcome; a key whose last attempt failed is
    reset and executed again.
    """

    def __init__(self, settings: Settings, session_factory: sessionmaker[Session]) -> None:
        self.settings = settings
        self.session_factory = session_factory

    def run(self, *, run_key: str, trigger_source: str = "manual") -> RunResult:
        with self.session_factory() as db:
            run, created = create_or_get_run(
                db,
                run_key=run_key,
                trigger_source=trigger_source,
                source_path=self.settings.source_path,
                target_path=self.settings.target_path,
                mapping_path=self.settings.mapping_path,
            )
            if not created:
                if run.status == "failed":
                    logger.info("retrying previously failed run", extra={"run_key": run_key})
                    reset_failed_run_state(db, run)
                else:
                    logger.info("idempotent run reused", extra={"run_key": run_key, "status": run.status})
                    return self._result_from_run(run, reused_existing_run=True)

            mark_run_running(db, run)

            source_count = 0
            target_count = 0
            report_path = self._report_path(run_key)

            try:
                source_records, target_records = self._run_step(
                    db,
                    run,
                    "read_sources",
                    lambda: read_sources(
                        Path(self.settings.source_path),
                        Path(self.settings.target_path),
                        parallel=self.settings.parallel_reads,
                    ),
                )
                source_count = len(source_records)
                target_count = len(target_records)

                mapping_config = self._run_step(
                    db,
                    run,
                    "load_mapping",
                    lambda: load_mapping_config(Path(self.settings.mapping_path)),
                )

                result = self._run_step(
                    db,
                    run,
                    "reconcile",
                    lambda: reconcile(
                        source_records,
                        target_records,
                        mapping_config.field_mapping,
                        mapping_config.unique_key,
                        report_duplicates=self.settings.duplicate_key_policy == "report",
                    ),
                )

                self._run_step(
                    db,
                    run,
                    "store_findings",
                    lambda: store_mismatches(db, run_id=run.id, mismatches=result.mismatched_records),
                )
                self._run_step(db, run, "write_report", lambda: write_report(report_path, result))

                mark_run_succeeded(
                    db,
                    run,
                    result=result,
                    source_count=source_count,
                    target_count=target_count,
                    report_path=str(report_path),
                )
            except Exception as exc:
                # A failed flush leaves the session unusable until rolled back.
                db.rollback()
                # Fatal runs leave no report behind.
                report_path.unlink(missing_ok=True)
                mark_run_failed(db, run, error=str(exc), source_count=source_count, target_count=target_count)
                logger.exception("reconciliation run failed", extra={"run_key": run_key})
                return self._result_from_run(run, reused_existing_run=False)

            logger.info(
                "reconciliation run completed",
                extra={
                    "run_key": run_key,
                    "validation_status": result.status,
                    "missing_target_rows": result.missing_target_rows,
                    "value_mismatches": result.value_mismatches,
                    "field_mapping_failures": len(result.field_mapping_check),
                },
            )
            return self._result_from_run(run, reused_existing_run=False)

    def _run_step(self, db: Session, run: ReconciliationRun, step_name: str, fn: Callable[[], T]) -> T:
        # Each step runs once; its outcome is stored before the error propagates.
        step = create_step(db, run_id=run.id, step_name=step_name)
        try:
            result = fn()
        except Exception as exc:
            db.rollback()
            finish_step_failure(db, step, str(exc))
            raise
        finish_step_success(db, step)
        return result

    def _report_path(self, run_key: str) -> Path:
        return Path(self.settings.report_dir) / f"{run_key}.json"

    def _result_from_run(self, run: ReconciliationRun, reused_existing_run: bool) -> RunResult:
        return RunResult(
            run_id=run.id,
            run_key=run.run_key,
            trigger_source=run.trigger_source,
            status=run.status,
            validation_status=run.validation_status,
            source_count=run.source_count,
            target_count=run.target_count,
            mismatch_count=run.mismatch_count,
            field_mapping_failures=run.field_mapping_failures,
            duplicate_target_keys=run.duplicate_target_keys,
            report_path=run.report_path,
            reused_existing_run=reused_existing_run,
            error=run.error,
        )
