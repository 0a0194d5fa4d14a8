from geoqueue.services.errors import ValidationError

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


def parse_id(value, field: str) -> int:
    """Integer id from a JSON body or form field. Anything else is a ValidationError."""
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if not isinstance(value, (int, str)):
        raise ValidationError(f"{field} must be an integer")
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{field} must be an integer")


def parse_bool(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
    raise ValidationError(f"{field} must be a boolean")
