"""Input validation for CLI arguments."""
import sys

from user_secretstore.secrets.domains.models import EmptyContentError, InvalidNameError
from user_secretstore.secrets.domains.validators import NAME_PATTERN, validate_content, validate_name


def validate_secret_name(name: str) -> None:
    """
    Validate secret name for CLI use.

    Args:
        name: Secret name to validate

    Raises:
        SystemExit with code 2 if validation fails
    """
    try:
        validate_name(name)
    except InvalidNameError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(f"\nSecret names must match: {NAME_PATTERN.pattern}", file=sys.stderr)
        print("Start with a letter or underscore; then letters, digits, underscores only.", file=sys.stderr)
        print("\nExamples of valid names:", file=sys.stderr)
        print("  ✓ MyPwd", file=sys.stderr)
        print("  ✓ _service_token", file=sys.stderr)
        print("  ✓ DATABASE_PASSWORD_123", file=sys.stderr)
        print("\nExamples of invalid names:", file=sys.stderr)
        print("  ✗ 1abc (starts with a digit)", file=sys.stderr)
        print("  ✗ my-name (contains hyphen)", file=sys.stderr)
        print("  ✗ api.key (contains dot)", file=sys.stderr)
        sys.exit(2)


def validate_secret_value(value: str) -> None:
    """
    Validate secret value is not empty.

    Raises:
        SystemExit with code 2 if validation fails
    """
    try:
        validate_content(value)
    except EmptyContentError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
