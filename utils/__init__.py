"""Shared utilities for the service."""
from utils.case import dict_keys_to_camel, model_to_camel
from utils.log import configure_logging

__all__ = [
    "configure_logging",
    "dict_keys_to_camel",
    "model_to_camel",
]
