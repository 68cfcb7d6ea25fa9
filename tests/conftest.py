from collections.abc import Callable, Generator
import csv
import json
from pathlib import Path

import pytest

from recordmatch.config import Settings
from recordmatch.database import build_session_factory
from recordmatch.pipeline import ReconciliationRunner


def write_csv(path: Path, header: list[str], rows: list[list[str]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as outfile:
        writer = csv.writer(outfile)
        writer.writerow(header)
        writer.writerows(rows)
    return path


def write_mapping(path: Path, field_mapping: dict[str, str], unique_key: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"fieldMapping": field_mapping, "uniqueKey": unique_key}), encoding="utf-8")
    return path


@pytest.fixture()
def temp_workspace(tmp_path: Path) -> Path:
    (tmp_path / "data").mkdir(parents=True, exist_ok=True)
    (tmp_path / "config").mkdir(parents=True, exist_ok=True)
    return tmp_path


@pytest.fixture()
def make_settings(temp_workspace: Path) -> Callable[..., Settings]:
    def _make(**overrides: object) -> Settings:
        values: dict[str, object] = {
            "app_name": "recordmatch",
            "database_url": f"sqlite:///{temp_workspace / 'test.db'}",
            "log_level": "INFO",
            "source_path": str(temp_workspace / "data" / "source.csv"),
            "target_path": str(temp_workspace / "data" / "target.csv"),
            "mapping_path": str(temp_workspace / "config" / "mapping.json"),
            "report_dir": str(temp_workspace / "reports"),
            "parallel_reads": True,
            "duplicate_key_policy": "last_wins",
            "schedule_hour_utc": 2,
            "schedule_minute_utc": 0,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture()
def test_settings(make_settings: Callable[..., Settings]) -> Settings:
    return make_settings()


@pytest.fixture()
def runner(test_settings: Settings) -> Generator[ReconciliationRunner, None, None]:
    session_factory = build_session_factory(test_settings.database_url)
    yield ReconciliationRunner(test_settings, session_factory)


@pytest.fixture()
def write_inputs(test_settings: Settings) -> Callable[..., None]:
    """Write source, target and mapping files at the paths of ``test_settings``."""

    def _write(
        source: tuple[list[str], list[list[str]]],
        target: tuple[list[str], list[list[str]]],
        field_mapping: dict[str, str],
        unique_key: str = "id",
    ) -> None:
        write_csv(Path(test_settings.source_path), *source)
        write_csv(Path(test_settings.target_path), *target)
        write_mapping(Path(test_settings.mapping_path), field_mapping, unique_key)

    return _write
