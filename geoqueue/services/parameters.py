import json
import math

from geoqueue.services.errors import ValidationError

NUMERIC_TYPES = ("Float", "Integer")


def _is_number(value) -> bool:
    # bool es subclase de int, pero no es un número válido aquí
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _is_integer(value) -> bool:
    if not _is_number(value):
        return False
    return isinstance(value, int) or float(value).is_integer()


def coerce_parameters(raw) -> dict:
    """Accepts a dict or a JSON-encoded object string."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ValidationError("parameters must be a JSON object")
    if not isinstance(raw, dict):
        raise ValidationError("parameters must be a JSON object")
    return raw


def validate_parameters(schema: list, data: dict) -> None:
    """
    Checks data against a design's parameter schema.

    Fields are checked in declared order and the first violation is raised,
    so a missing early field is reported before a bad later one.
    """
    if not isinstance(schema, list):
        raise ValidationError("design parameter schema is malformed")

    for param in schema:
        name = param.get("InputName")
        kind = param.get("InputType")

        if name not in data:
            raise ValidationError(f"Missing required parameter: {name}")

        value = data[name]

        if kind in NUMERIC_TYPES:
            if kind == "Integer" and not _is_integer(value):
                raise ValidationError(f"Parameter {name} must be an integer")
            if kind == "Float" and not _is_number(value):
                raise ValidationError(f"Parameter {name} must be a number")

            low, high = param.get("NumberMin"), param.get("NumberMax")
            if low is not None and value < low:
                raise ValidationError(f"Parameter {name} must be >= {low}")
            if high is not None and value > high:
                raise ValidationError(f"Parameter {name} must be <= {high}")

        elif kind == "Text":
            if not isinstance(value, str):
                raise ValidationError(f"Parameter {name} must be a string")

            min_len, max_len = param.get("TextMinLen"), param.get("TextMaxLen")
            if min_len is not None and len(value) < min_len:
                raise ValidationError(f"Parameter {name} must be at least {min_len} characters")
            if max_len is not None and len(value) > max_len:
                raise ValidationError(f"Parameter {name} must be no more than {max_len} characters")

        else:
            raise ValidationError(f"Parameter {name} has unsupported type {kind!r}")
