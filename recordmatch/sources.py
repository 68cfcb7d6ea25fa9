from concurrent.futures import ThreadPoolExecutor
import csv
import json
from pathlib import Path
from types import MappingProxyType

from recordmatch.errors import ConfigError, SourceReadError
from recordmatch.schemas import MappingConfig, Record


def read_records(input_path: Path) -> list[Record]:
    if not input_path.exists():
        raise SourceReadError(f"input file not found: {input_path}")

    records: list[Record] = []
    try:
        with input_path.open("r", encoding="utf-8-sig", newline="") as infile:
            reader = csv.reader(infile)
            header = next(reader, None)
            if header is None:
                return records
            for row in reader:
                if not row:
                    continue
                if len(row) != len(header):
                    raise SourceReadError(
                        f"{input_path}: line {reader.line_num} has {len(row)} fields, header has {len(header)}"
                    )
                records.append(MappingProxyType(dict(zip(header, row))))
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise SourceReadError(f"cannot read {input_path}: {exc}") from exc
    return records


def read_sources(
    source_path: Path,
    target_path: Path,
    *,
    parallel: bool = True,
) -> tuple[list[Record], list[Record]]:
    if not parallel:
        return read_records(source_path), read_records(target_path)

    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="read") as executor:
        source_future = executor.submit(read_records, source_path)
        target_future = executor.submit(read_records, target_path)
        return source_future.result(), target_future.result()


def load_mapping_config(config_path: Path) -> MappingConfig:
    if not config_path.exists():
        raise ConfigError(f"mapping config not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as infile:
            payload = json.load(infile)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ConfigError(f"cannot parse mapping config {config_path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigError("mapping config must be a JSON object")

    for required in ("fieldMapping", "uniqueKey"):
        if required not in payload:
            raise ConfigError(f"mapping config is missing '{required}'")

    field_mapping = payload["fieldMapping"]
    unique_key = payload["uniqueKey"]

    if not isinstance(field_mapping, dict) or not field_mapping:
        raise ConfigError("fieldMapping must be a non-empty object")
    for source_field, target_field in field_mapping.items():
        if not isinstance(target_field, str) or not target_field:
            raise ConfigError(f"fieldMapping['{source_field}'] must be a non-empty string")

    if not isinstance(unique_key, str) or not unique_key:
        raise ConfigError("uniqueKey must be a non-empty string")
    if unique_key not in field_mapping:
        raise ConfigError(f"uniqueKey '{unique_key}' must be a source field in fieldMapping")

    return MappingConfig(field_mapping=dict(field_mapping), unique_key=unique_key)
