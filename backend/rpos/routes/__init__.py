# Overview: Route helpers shared by the API blueprints.

from __future__ import annotations

from ..errors import ValidationError


def missing_fields_error(data: dict, *fields: str) -> dict | None:
    """Envelope for absent required fields, or None when all are present."""
    missing = [name for name in fields if data.get(name) in (None, "")]
    if not missing:
        return None
    return ValidationError(f"{', '.join(missing)} required", {"missing": missing}).to_dict()
