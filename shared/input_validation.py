"""
Input screening for JSON request bodies.

Rejects values that look like prototype-pollution probes aimed at the
document database, and bounds the length of every string field.
"""

# Substrings never accepted in a string field
BLOCKED_TOKENS = ("__proto__", "constructor")

# Maximum length of a single string field after trimming
MAX_FIELD_LENGTH = 5000

# Maximum size of a JSON request body in bytes
MAX_BODY_BYTES = 10 * 1024


class InputRejectedError(ValueError):
    """Raised when a request field fails screening."""
    pass


def screen_string(value: str) -> str:
    """
    Screen and normalise one string field.

    Returns:
        The trimmed value

    Raises:
        InputRejectedError: Blocked token present or value too long
    """
    for token in BLOCKED_TOKENS:
        if token in value:
            raise InputRejectedError("Invalid input detected")

    trimmed = value.strip()
    if len(trimmed) > MAX_FIELD_LENGTH:
        raise InputRejectedError("Input too long")

    return trimmed
