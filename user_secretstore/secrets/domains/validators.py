"""Name and content rules shared by every secret operation."""
import re

from .models import EmptyContentError, InvalidNameError

# Names double as registry value names / JSON keys / keyring usernames
NAME_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def is_valid_name(name) -> bool:
    return isinstance(name, str) and bool(NAME_PATTERN.fullmatch(name))


def validate_name(name) -> None:
    """
    Validate a secret name.

    Args:
        name: Secret name to validate

    Raises:
        InvalidNameError: If name is empty, not a string, or does not match NAME_PATTERN
    """
    if not name:
        raise InvalidNameError("Secret name cannot be empty", name=name)

    if not is_valid_name(name):
        raise InvalidNameError(
            f"Invalid secret name {name!r}: must match {NAME_PATTERN.pattern}",
            name=name,
        )


def validate_content(content, name: str = None) -> None:
    """
    Validate secret content is a non-empty string.

    The content itself never appears in the error message.

    Raises:
        EmptyContentError: If content is None, not a string, or empty
    """
    if not isinstance(content, str) or content == "":
        raise EmptyContentError("Secret content cannot be empty", name=name)
