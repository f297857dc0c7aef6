"""Placeholder substitution for webhook payload templates.

A template is any JSON-like value. Strings may contain ``{{dotted.path}}``
placeholders that are looked up in the event data; unresolvable paths are
left untouched so the receiver can see what was missing.
"""

from __future__ import annotations

import json
import re
from typing import Any

_PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")

_MISSING = object()


def resolve_path(data: Any, path: str) -> Any:
    """Walk ``data`` along a dot-separated path; return ``_MISSING`` if any step fails."""
    value = data
    for segment in path.strip().split("."):
        if isinstance(value, dict):
            if segment not in value:
                return _MISSING
            value = value[segment]
        elif isinstance(value, list):
            try:
                value = value[int(segment)]
            except (ValueError, IndexError):
                return _MISSING
        else:
            return _MISSING
    return value


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def render_string(template: str, data: Any) -> str:
    def replace(match: re.Match[str]) -> str:
        value = resolve_path(data, match.group(1))
        if value is _MISSING:
            return match.group(0)
        return _to_text(value)

    return _PLACEHOLDER.sub(replace, template)


def compile_template(template: Any, data: Any) -> Any:
    """Return a copy of ``template`` with every placeholder string rendered against ``data``."""
    if isinstance(template, dict):
        return {key: compile_template(value, data) for key, value in template.items()}
    if isinstance(template, list):
        return [compile_template(item, data) for item in template]
    if isinstance(template, str):
        return render_string(template, data)
    return template
