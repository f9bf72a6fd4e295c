"""``{{name}}`` placeholder resolution for node configuration."""

from __future__ import annotations

import re
from typing import Dict, Mapping, TypeVar

from pydantic import BaseModel

PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")

ConfigT = TypeVar("ConfigT", bound=BaseModel)


def resolve_template(template: str, variables: Mapping[str, str]) -> str:
    """Replace every ``{{name}}`` with its variable; unknown names become ``""``."""
    return PLACEHOLDER.sub(lambda m: str(variables.get(m.group(1), "")), template)


def resolve_config(config: ConfigT, variables: Mapping[str, str]) -> ConfigT:
    """Copy of ``config`` with placeholders resolved in its top-level string fields."""
    updates: Dict[str, str] = {}
    for name in type(config).model_fields:
        value = getattr(config, name)
        if isinstance(value, str) and "{{" in value:
            updates[name] = resolve_template(value, variables)
    return config.model_copy(update=updates) if updates else config
