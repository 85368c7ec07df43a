# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Validation of streamed moderator and analysis payloads against JSON Schemas."""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Tuple

from jsonschema import Draft202012Validator
from referencing import Registry, Resource

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"


@lru_cache(maxsize=None)
def load_schema(name: str) -> Dict[str, Any]:
    """Load a bundled schema by name (e.g. "analysis").

    Raises:
        FileNotFoundError: If no schema with that name is bundled
    """
    path = SCHEMA_DIR / f"{name}.schema.json"
    return json.loads(path.read_text(encoding="utf-8"))


@lru_cache(maxsize=None)
def _build_registry() -> Registry:
    """Registry of every bundled schema, keyed by $id, for $ref resolution."""
    resources = []
    for path in sorted(SCHEMA_DIR.glob("*.schema.json")):
        contents = json.loads(path.read_text(encoding="utf-8"))
        resources.append((contents["$id"], Resource.from_contents(contents)))
    return Registry().with_resources(resources)


def validate_json(document: Any, schema_name: str) -> Tuple[bool, List[str]]:
    """Validate a document against a bundled schema.

    Args:
        document: Decoded JSON document
        schema_name: Bundled schema name ("moderator" or "analysis")

    Returns:
        Tuple of (is_valid, errors) with human-readable error messages
    """
    validator = Draft202012Validator(load_schema(schema_name), registry=_build_registry())
    errors = sorted(validator.iter_errors(document), key=lambda e: [str(p) for p in e.absolute_path])
    if not errors:
        return True, []

    messages: List[str] = []
    for err in errors:
        path = ".".join(str(p) for p in err.absolute_path)
        location = f" at '{path}'" if path else ""
        messages.append(f"{err.message}{location}")
    return False, messages
