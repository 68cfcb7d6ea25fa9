import json
from pathlib import Path

from recordmatch.schemas import ValidationResult


def write_json(path: Path, payload: dict[str, object]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as outfile:
        # Report sections keep their declared order.
        json.dump(payload, outfile, indent=2, ensure_ascii=False)
        outfile.write("\n")


def write_report(path: Path, result: ValidationResult) -> None:
    write_json(path, result.to_dict())
