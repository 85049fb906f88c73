"""
Case conversion between the service's snake_case models and the camelCase JSON the UI expects.
Uses Pydantic's alias_generators for consistency with schema validation.
"""
from typing import Any

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


def dict_keys_to_camel(obj: Any) -> Any:
    """Recursively convert dict keys from snake_case to camelCase for API responses."""
    if isinstance(obj, dict):
        return {to_camel(k): dict_keys_to_camel(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [dict_keys_to_camel(x) for x in obj]
    return obj


def model_to_camel(model: BaseModel | None) -> dict[str, Any] | None:
    """Dump a response model to a camelCase dict (JSON-safe)."""
    if model is None:
        return None
    return dict_keys_to_camel(model.model_dump(mode="json"))
