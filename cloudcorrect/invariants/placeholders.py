"""Placeholder resolution for check parameters.

A parameter string may reference an earlier check's result data with
``{{alias.property}}``. Property lookup is case-insensitive; references that
cannot be resolved are left in place as literal text.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

PLACEHOLDER_RE = re.compile(r"\{\{([^}]+)\}\}")


@dataclass
class Resolution:
    """Resolved copy of a parameter structure plus the tokens that fed it."""

    value: Any
    resolved: list[str] = field(default_factory=list)


def resolve_placeholders(parameters: Any, context: Mapping[str, Mapping[str, Any]]) -> Resolution:
    """Return a fresh copy of ``parameters`` with placeholders substituted.

    Mappings and sequences are traversed recursively; only string values are
    rewritten, keys are left alone. The input is never mutated.
    """
    resolved: list[str] = []
    value = _resolve(parameters, context, resolved)
    return Resolution(value=value, resolved=resolved)


def _resolve(node: Any, context: Mapping[str, Mapping[str, Any]], resolved: list[str]) -> Any:
    if isinstance(node, str):
        return _substitute(node, context, resolved)
    if isinstance(node, Mapping):
        return {k: _resolve(v, context, resolved) for k, v in node.items()}
    if isinstance(node, (list, tuple)):
        return [_resolve(v, context, resolved) for v in node]
    return node


def _substitute(text: str, context: Mapping[str, Mapping[str, Any]], resolved: list[str]) -> str:
    def replace(match: re.Match[str]) -> str:
        token = match.group(0)
        value = lookup(match.group(1), context)
        if value is None:
            return token
        if token not in resolved:
            resolved.append(token)
        return _stringify(value)

    return PLACEHOLDER_RE.sub(replace, text)


def lookup(path: str, context: Mapping[str, Mapping[str, Any]]) -> Any:
    """Find ``alias.property`` in context, or None when it is not available."""
    # Only the first two segments count: {{a.b.c}} reads property "b" of "a".
    parts = path.strip().split(".")
    if len(parts) < 2:
        return None
    alias, prop = parts[0], parts[1]
    data = context.get(alias.strip())
    if not isinstance(data, Mapping):
        return None
    wanted = prop.strip().lower()
    for key, value in data.items():
        if str(key).lower() == wanted:
            return value
    return None


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, default=str)
