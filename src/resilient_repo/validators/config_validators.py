def to_uppercase(value: str | None) -> str | None:
    """
    Converts a string to uppercase if it's not None.
    """
    if value is None:
        return None
    return value.upper()

def to_lowercase(value: str | None) -> str | None:
    """
    Converts a string to lowercase if it's not None.
    """
    if value is None:
        return None
    return value.lower()

def require_positive(value: int | float) -> int | float:
    """
    Reject zero and negative numbers (retry ceilings, timeouts).
    """
    if value <= 0:
        raise ValueError(f"must be greater than zero, got {value}")
    return value
