"""Build definition file loading.

Definitions are kept in YAML or JSON files with a top-level ``builds``
list, one mapping per build.
"""

import json
from pathlib import Path
from typing import Any

import yaml

from shared_builds.builds.definition import BuildDefinition

YAML_SUFFIXES = {".yaml", ".yml"}


def load_document(path: Path) -> dict[str, Any]:
    """Load a YAML or JSON file and return its contents as a dict.

    Args:
        path: Path to the file; the suffix selects the format.

    Returns:
        Parsed document as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        if path.suffix.lower() in YAML_SUFFIXES:
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping in {path}, got {type(data).__name__}")
    return data


def parse_definitions(data: dict[str, Any]) -> list[BuildDefinition]:
    """Validate the ``builds`` list of a definitions document.

    Identical definitions are collapsed, keeping the first occurrence.

    Raises:
        ValueError: If ``builds`` is not a list.
        pydantic.ValidationError: If an entry does not match the schema.
    """
    entries = data.get("builds", [])
    if not isinstance(entries, list):
        raise ValueError(f"'builds' must be a list, got {type(entries).__name__}")

    definitions: list[BuildDefinition] = []
    seen: set[BuildDefinition] = set()
    for entry in entries:
        definition = BuildDefinition.model_validate(entry)
        if definition in seen:
            continue
        seen.add(definition)
        definitions.append(definition)
    return definitions


def load_definitions(path: Path) -> list[BuildDefinition]:
    """Load and validate build definitions from a YAML or JSON file."""
    return parse_definitions(load_document(path))


def dump_definitions(definitions: list[BuildDefinition]) -> list[dict[str, Any]]:
    """Export definitions as JSON-ready dictionaries."""
    output = []
    for definition in definitions:
        data = definition.model_dump(mode="json", exclude_none=True)
        data["env"] = definition.env_dict
        output.append(data)
    return output


__all__ = [
    "dump_definitions",
    "load_definitions",
    "load_document",
    "parse_definitions",
]
