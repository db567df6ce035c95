"""
JSON Schema checks for the documents issuectl reads and writes.

Lock files are validated on read (a file that fails is corrupt) and before
every write, so a malformed lock never reaches disk.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

import jsonschema

from issuectl.lib.errors import ValidationError

SCHEMAS_DIR = Path(__file__).resolve().parent.parent / "schemas"


class SchemaError(ValidationError):
    """A document does not match its schema."""

    def __init__(self, schema_name: str, message: str, path: Optional[str] = None):
        self.schema_name = schema_name
        self.path = path
        where = f" at {path}" if path else ""
        super().__init__(f"[{schema_name}] {message}{where}")


@lru_cache(maxsize=None)
def _validator(schema_name: str):
    schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
    try:
        schema = json.loads(schema_path.read_text())
    except FileNotFoundError:
        raise SchemaError(schema_name, f"No schema file {schema_path}") from None
    cls = jsonschema.validators.validator_for(schema)
    cls.check_schema(schema)
    return cls(schema)


def validate(data, schema_name: str) -> None:
    """Raise SchemaError for the most relevant violation in data, if any."""
    error = jsonschema.exceptions.best_match(_validator(schema_name).iter_errors(data))
    if error is None:
        return
    location = ".".join(str(part) for part in error.absolute_path) or "(root)"
    raise SchemaError(schema_name, error.message, location)


def validate_text(text: str, schema_name: str, source: Union[str, Path]) -> dict:
    """Decode a JSON document read from source and validate it.

    Raises:
        SchemaError: text is not JSON, or the decoded value fails the schema
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaError(schema_name, f"{source} is not valid JSON ({e})") from None
    validate(data, schema_name)
    return data


def validate_before_write(data: dict, schema_name: str, filepath: Path) -> None:
    try:
        validate(data, schema_name)
    except SchemaError as e:
        raise SchemaError(schema_name, f"Refusing to write invalid data to {filepath}: {e}") from None
