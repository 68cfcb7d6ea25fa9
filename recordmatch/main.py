import argparse
from dataclasses import replace
from datetime import UTC, datetime
import logging

from recordmatch.config import Settings, get_settings
from recordmatch.database import build_session_factory
from recordmatch.pipeline import ReconciliationRunner
from recordmatch.scheduler import start_scheduler


EXIT_RUN_FAILED = 1
EXIT_DATA_MISMATCH = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile a source and a target CSV file against a field mapping")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="run one reconciliation")
    run_parser.add_argument("--source", help="source CSV file (default: SOURCE_PATH)")
    run_parser.add_argument("--target", help="target CSV file (default: TARGET_PATH)")
    run_parser.add_argument("--mapping", help="mapping config JSON file (default: MAPPING_PATH)")
    run_parser.add_argument("--report-dir", help="directory for JSON reports (default: REPORT_DIR)")
    run_parser.add_argument("--run-key", required=False, help="Idempotency key for this run")
    run_parser.add_argument(
        "--trigger-source",
        default="manual",
        choices=["manual", "scheduled"],
        help="Metadata label for how this run was triggered",
    )
    run_parser.add_argument(
        "--fail-on-mismatch",
        action="store_true",
        help=f"exit with code {EXIT_DATA_MISMATCH} when the report status is failed",
    )

    schedule_parser = subparsers.add_parser("schedule", help="start daily scheduler")
    schedule_parser.add_argument("--run-now", action="store_true", help="also run once immediately")

    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides = {
        "source_path": args.source,
        "target_path": args.target,
        "mapping_path": args.mapping,
        "report_dir": args.report_dir,
    }
    return replace(settings, **{name: value for name, value in overrides.items() if value})


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    session_factory = build_session_factory(settings.database_url)
    if args.command == "schedule":
        start_scheduler(settings, session_factory, run_now=args.run_now)
        return

    settings = apply_overrides(settings, args)
    run_key = args.run_key or f"{args.trigger_source}-{datetime.now(UTC):%Y%m%dT%H%M%S%fZ}"

    runner = ReconciliationRunner(settings, session_factory)
    result = runner.run(run_key=run_key, trigger_source=args.trigger_source)

    print(
        "run_id={run_id} run_key={run_key} trigger={trigger} status={status} validation={validation} "
        "source={source} target={target} mismatches={mismatches} mapping_failures={mapping_failures} "
        "duplicate_keys={duplicates} reused={reused} report={report}".format(
            run_id=result.run_id,
            run_key=result.run_key,
            trigger=result.trigger_source,
            status=result.status,
            validation=result.validation_status,
            source=result.source_count,
            target=result.target_count,
            mismatches=result.mismatch_count,
            mapping_failures=result.field_mapping_failures,
            duplicates=result.duplicate_target_keys,
            reused=result.reused_existing_run,
            report=result.report_path,
        )
    )
    if result.status == "failed":
        raise SystemExit(EXIT_RUN_FAILED)
    if args.fail_on_mismatch and result.validation_status == "failed":
        raise SystemExit(EXIT_DATA_MISMATCH)


if __name__ == "__main__":
    main()
