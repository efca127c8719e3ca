"""CLI entrypoint for user-secretstore."""
import sys
import argparse
import getpass
import logging
from pathlib import Path

from .validators import validate_secret_name, validate_secret_value

VERSION = "0.1.0"

# Configure logging to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def cmd_version(args):
    """Show version information."""
    print(f"user-secretstore {VERSION}")


def cmd_config_set_path(args):
    """Set config file path preference."""
    from user_secretstore.secrets.domains.preferences import set_preference

    config_path = Path(args.path).resolve()

    if not config_path.exists():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    if not config_path.is_file():
        print(f"Error: Path is not a file: {config_path}", file=sys.stderr)
        sys.exit(1)

    set_preference("config_path", str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_show(args):
    """Show current config file path and the effective backends."""
    from user_secretstore.secrets.domains.config_loader import default_config_path, load_config
    from user_secretstore.secrets.domains.preferences import get_preference

    config_path_pref = get_preference("config_path")

    if config_path_pref and Path(config_path_pref).exists():
        print(f"Config path: {config_path_pref}")
        print("Source: preference")
    elif config_path_pref:
        print(f"Config path (from preference, but file not found): {config_path_pref}")
        print("Source: preference")
    else:
        default_config = default_config_path()
        print(f"Config path: {default_config}")
        if default_config.exists():
            print("Source: default")
        else:
            print("Source: default (file not found, using built-in defaults)")

    config = load_config()
    print(f"Store backend: {config['store']['backend']}")
    print(f"Protector backend: {config['protector']['backend']}")


def cmd_config_clear(args):
    """Clear config path preference."""
    from user_secretstore.secrets.domains.config_loader import default_config_path
    from user_secretstore.secrets.domains.preferences import clear_preference

    clear_preference("config_path")
    print(f"Config path preference cleared. Will use default: {default_config_path()}")


def cmd_config_init(args):
    """Interactive config setup."""
    from user_secretstore.secrets.domains.config_loader import default_config_path, write_default_config
    from user_secretstore.secrets.domains.preferences import set_preference

    default_config = default_config_path()

    print("=== user-secretstore Configuration Setup ===\n")
    print(f"Default config location: {default_config}\n")

    if default_config.exists():
        print(f"Configuration file already exists at: {default_config}")
        response = input("Do you want to replace it with the defaults? (y/N): ").strip().lower()
        if response != 'y':
            print(f"\nUsing existing config at: {default_config}")
            return
        write_default_config(default_config)
        print(f"\nDefault config written to: {default_config}")
        return

    print("Choose an option:")
    print("1. Write a default config file to the default location")
    print("2. Point to an existing config file at a different location")
    print("3. Cancel (built-in defaults will be used)")

    choice = input("\nEnter choice (1-3): ").strip()

    if choice == "1":
        write_default_config(default_config)
        print(f"\nDefault config written to: {default_config}")

    elif choice == "2":
        config_path = input("Enter path to config file: ").strip()
        config_file = Path(config_path).expanduser().resolve()

        if not config_file.exists():
            print(f"Error: File not found: {config_file}", file=sys.stderr)
            sys.exit(1)

        set_preference("config_path", str(config_file))
        print(f"\nConfig path set to: {config_file}")

    elif choice == "3":
        print("\nSetup cancelled.")
        print(f"Create your config file at: {default_config}")
        print("Or use: usersecrets config set-path <path>")

    else:
        print("Invalid choice.", file=sys.stderr)
        sys.exit(2)


def _prompt_overwrite(name: str) -> bool:
    response = input(f"Secret '{name}' already exists. Overwrite? (y/N): ").strip().lower()
    return response == 'y'


def _strip_one_line_ending(value: str) -> str:
    """Drop the single line terminator added by echo/pipes; keep any others."""
    if value.endswith("\r\n"):
        return value[:-2]
    if value.endswith("\n"):
        return value[:-1]
    return value


def _read_secret_value(args) -> str:
    if args.value is not None:
        return args.value
    if args.stdin:
        return _strip_one_line_ending(sys.stdin.read())
    return getpass.getpass(f"Value for '{args.secret_name}': ")


def cmd_secrets_put(args):
    """Encrypt and store a secret."""
    from user_secretstore.secrets.domains.models import SecretStoreError
    from user_secretstore.secrets.workflows.secret_operations import put_secret

    validate_secret_name(args.secret_name)
    value = _read_secret_value(args)
    validate_secret_value(value)

    # Only prompt when a human is at the terminal; otherwise an existing secret is kept
    confirm = None
    if not args.stdin and sys.stdin.isatty():
        confirm = _prompt_overwrite

    try:
        result = put_secret(args.secret_name, value, overwrite=args.overwrite, confirm=confirm)
    except SecretStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if not result:
        print(
            f"Error: Secret '{args.secret_name}' already exists and was not overwritten "
            f"(use --overwrite to replace it)",
            file=sys.stderr
        )
        sys.exit(1)

    if not args.quiet:
        print(f"Secret '{args.secret_name}' stored")
    sys.exit(0)


def cmd_secrets_get(args):
    """Decrypt and print a secret."""
    from user_secretstore.secrets.domains.models import SecretNotFoundError, SecretStoreError
    from user_secretstore.secrets.workflows.secret_operations import get_secret

    validate_secret_name(args.secret_name)

    try:
        secret_value = get_secret(args.secret_name)
    except SecretNotFoundError:
        print(f"Error: Secret '{args.secret_name}' not found", file=sys.stderr)
        sys.exit(1)
    except SecretStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.quiet:
        # Quiet mode: output only value, no formatting
        print(secret_value)
    else:
        print(f"Secret '{args.secret_name}': {secret_value}")
    sys.exit(0)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="usersecrets",
        description="user-secretstore CLI - store secrets encrypted for the current user and machine",
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (secret not found, decryption failed, overwrite declined, etc.)
  2 - Usage error (invalid arguments, invalid secret name, empty value, etc.)

Environment variables:
  USER_SECRETSTORE_BACKEND   - store backend: file, keyring, registry (overrides config file)
  USER_SECRETSTORE_PROTECTOR - protector backend: auto, dpapi, fernet (overrides config file)

Configuration:
  Default location: ~/.config/user-secretstore/config.yml (optional)
  Custom path: Set with 'usersecrets config set-path <path>'
  View current: Run 'usersecrets config show'
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging on stderr"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of user-secretstore"
    )

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage user-secretstore configuration"
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")

    config_set_path_parser = config_subparsers.add_parser(
        "set-path",
        help="Set config file path",
        description="""
Set the configuration file path preference.

This stores the absolute path to your config file in:
~/.config/user-secretstore/preferences.json
        """
    )
    config_set_path_parser.add_argument("path", help="Path to config file")

    config_subparsers.add_parser(
        "show",
        help="Show current config path and backends",
    )
    config_subparsers.add_parser(
        "clear",
        help="Clear config path preference",
    )
    config_subparsers.add_parser(
        "init",
        help="Interactive config setup",
    )

    # secrets command
    secrets_parser = subparsers.add_parser(
        "secrets",
        help="Secret management operations",
        description="Store and read encrypted secrets"
    )
    secrets_subparsers = secrets_parser.add_subparsers(dest="secrets_command")

    put_parser = secrets_subparsers.add_parser(
        "put",
        help="Encrypt and store a secret",
        description="""
Encrypt a value for the current user and machine and store it under NAME.

The value is read from --value, from stdin with --stdin, or prompted for
without echo. If NAME already exists it is only replaced with --overwrite
or after confirming at the terminal.

Exit codes:
  0 - Secret stored
  1 - Secret exists and was not overwritten, or encryption/storage failed
  2 - Invalid secret name or empty value
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    put_parser.add_argument(
        "secret_name",
        help="Name of the secret (format: ^[A-Za-z_][A-Za-z0-9_]*$)"
    )
    value_group = put_parser.add_mutually_exclusive_group()
    value_group.add_argument(
        "--value",
        help="Secret value (visible in shell history; prefer the prompt or --stdin)"
    )
    value_group.add_argument(
        "--stdin",
        action="store_true",
        help="Read the secret value from stdin"
    )
    put_parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Replace an existing secret without asking"
    )
    put_parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Print nothing on success"
    )

    get_parser = secrets_subparsers.add_parser(
        "get",
        help="Get a secret value",
        description="""
Decrypt a stored secret and print it to stdout. In quiet mode (-q),
only the value is printed.

Exit codes:
  0 - Secret found and printed
  1 - Secret not found or could not be decrypted
  2 - Invalid secret name format
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    get_parser.add_argument(
        "secret_name",
        help="Name of the secret (format: ^[A-Za-z_][A-Za-z0-9_]*$)"
    )
    get_parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Output only the secret value (useful for scripts)"
    )

    return parser, config_parser, secrets_parser


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (secret not found, decryption failed, config errors, etc.)
        2 - Usage errors (invalid arguments, invalid secret name format, etc.)
    """
    parser, config_parser, secrets_parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    try:
        if args.command == "version":
            cmd_version(args)
        elif args.command == "config":
            if args.config_command == "set-path":
                cmd_config_set_path(args)
            elif args.config_command == "show":
                cmd_config_show(args)
            elif args.config_command == "clear":
                cmd_config_clear(args)
            elif args.config_command == "init":
                cmd_config_init(args)
            else:
                config_parser.print_help()
                sys.exit(2)
        elif args.command == "secrets":
            if args.secrets_command == "put":
                cmd_secrets_put(args)
            elif args.secrets_command == "get":
                cmd_secrets_get(args)
            else:
                secrets_parser.print_help()
                sys.exit(2)
        else:
            parser.print_help()
            sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
