"""
Schema validation for stored rows.

Every write to the record store is checked against the collection's JSON
Schema. Rows that don't match are refused before they reach storage.
"""

import json
from pathlib import Path

import jsonschema
from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from workdesk.lib.errors import StoreFailure, ValidationFailed


class SchemaError(StoreFailure):
    """Row failed schema validation."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.detail = message
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


# Cache loaded schemas
_schema_cache: dict[str, dict] = {}


def _get_schemas_dir() -> Path:
    """Get path to schemas directory."""
    return Path(__file__).parent.parent / "schemas"


def _load_schema(schema_name: str) -> dict:
    """Load schema by name, with caching."""
    if schema_name not in _schema_cache:
        schema_path = _get_schemas_dir() / f"{schema_name}.schema.json"
        if not schema_path.exists():
            raise SchemaError(schema_name, f"Schema file not found: {schema_path}")
        _schema_cache[schema_name] = json.loads(schema_path.read_text())
    return _schema_cache[schema_name]


def validate(data: dict, schema_name: str) -> None:
    """
    Validate data against named schema.

    Args:
        data: Row to validate
        schema_name: Schema name, same as the collection name (e.g., "tasks")

    Raises:
        SchemaError: If validation fails
    """
    schema = _load_schema(schema_name)

    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        path = ".".join(str(p) for p in e.absolute_path) if e.absolute_path else "(root)"
        raise SchemaError(schema_name, e.message, path) from None


def validate_before_write(data: dict, schema_name: str, record_id: str) -> None:
    """
    Validate a row before it is written. Ensures we never store invalid data.

    Raises:
        SchemaError: If data doesn't match schema
    """
    try:
        validate(data, schema_name)
    except SchemaError as e:
        raise SchemaError(
            schema_name,
            f"Refusing to write invalid row {record_id}: {e.detail}",
            e.path,
        ) from None


def parse_input(model: type[BaseModel], data) -> BaseModel:
    """
    Parse caller input into a pydantic model.

    Accepts a dict or an instance of the model.

    Raises:
        ValidationFailed: Naming the first offending field
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ModelValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"]) or None
        raise ValidationFailed(first["msg"], field=field) from None
