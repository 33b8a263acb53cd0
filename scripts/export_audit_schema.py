"""Write JSON Schemas for the calculation request and the ledger record."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from carbon_storage.schemas import (
    CURRENT_AUDIT_SCHEMA_VERSION,
    AuditRecord,
    CalculationRequest,
)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path(__file__).resolve().parent.parent / "schemas",
    )
    args = parser.parse_args(argv)

    args.output_dir.mkdir(parents=True, exist_ok=True)
    outputs = {
        f"calculation_record_v{CURRENT_AUDIT_SCHEMA_VERSION}.json": AuditRecord,
        "calculation_request.json": CalculationRequest,
    }
    for filename, model in outputs.items():
        schema = model.model_json_schema(by_alias=True)
        (args.output_dir / filename).write_text(
            json.dumps(schema, indent=2) + "\n", encoding="utf-8"
        )
        print(args.output_dir / filename)


if __name__ == "__main__":
    main()
