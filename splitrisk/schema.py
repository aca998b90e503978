"""JSON Schema validation infrastructure.

Scenario files and YAML configuration are validated against the schemas
under ``schemas/`` before anything touches protocol state:
- Cross-reference registry for all SplitRisk schemas ($ref resolution)
- Cached validators
- Flat, path-prefixed error messages
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, List

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from splitrisk.core import SCHEMAS_DIR, load_json

SCENARIO_SCHEMA = SCHEMAS_DIR / "scenario.schema.json"
CONFIG_SCHEMA = SCHEMAS_DIR / "config.schema.json"


@lru_cache(maxsize=1)
def _schema_registry(schemas_dir: Path = SCHEMAS_DIR) -> Registry:
    """Build a schema registry so schemas can $ref each other by $id."""
    if not schemas_dir.is_dir():
        return Registry()

    resources = []
    for schema_path in sorted(schemas_dir.glob("*.schema.json")):
        schema = load_json(schema_path)
        if not isinstance(schema, dict):
            continue
        schema_id = schema.get("$id") or f"https://schemas.splitrisk.dev/{schema_path.name}"
        resources.append((schema_id, Resource.from_contents(schema, default_specification=DRAFT202012)))

    return Registry().with_resources(resources)


@lru_cache(maxsize=8)
def schema_validator(schema_path: Path) -> Draft202012Validator:
    """Create (and cache) a validator for a schema file."""
    schema = load_json(schema_path)
    return Draft202012Validator(schema, registry=_schema_registry())


def validate_against_schema(obj: Any, schema_path: Path) -> List[str]:
    """Validate an object against a schema.

    Returns:
        List of validation error messages (empty if valid)
    """
    validator = schema_validator(Path(schema_path))
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(obj), key=lambda e: e.json_path)
    ]
