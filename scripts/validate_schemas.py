"""Checks every request schema under auction_server/schemas against Draft 2020-12."""

from pathlib import Path
import json
from jsonschema import Draft202012Validator


SCHEMA_DIR = Path(__file__).resolve().parent.parent / "auction_server" / "schemas"


def validate() -> None:
    schemas = sorted(SCHEMA_DIR.glob("*.json"))
    if not schemas:
        raise SystemExit(f"no schemas found in {SCHEMA_DIR}")
    for schema in schemas:
        data = json.loads(schema.read_text())
        Draft202012Validator.check_schema(data)
        print(f"ok {schema.name}")


if __name__ == "__main__":
    validate()
