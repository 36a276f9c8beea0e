from typing import Any, Dict, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError


def _message(exc: ValidationError) -> str:
    err = exc.errors()[0]
    field = ".".join(str(part) for part in err["loc"])
    if err["type"] == "extra_forbidden":
        return f'"{field}" is not allowed'
    msg = err["msg"]
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    return f'"{field}" {msg}' if field else msg


def validate(
    schema: Type[BaseModel], payload: Any, kind: Optional[str] = None
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Check ``payload`` against ``schema``.

    Returns ``(value, None)`` with the normalized value, or ``(None, message)``.
    Passing ``kind`` marks the schema as a partial update: only fields present
    in the payload come back, and an empty payload is an error of its own.
    """
    if not isinstance(payload, dict):
        return None, "Request body must be an object"
    if kind is not None and not payload:
        return None, f"At least one property is required to update {kind.lower()}"
    try:
        model = schema.model_validate(payload)
    except ValidationError as exc:
        return None, _message(exc)
    return model.model_dump(exclude_unset=kind is not None), None
