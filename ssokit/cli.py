"""Command-line interface for ssokit configuration and session management."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from .exceptions import SessionError, SSOKitError


if TYPE_CHECKING:
    from collections.abc import Sequence

    from .manager import SessionManager
    from .session import Session


def main(argv: Sequence[str] | None = None) -> int:
    """Run the main CLI entry point.

    Returns
    -------
    int
        Exit code.
    """
    parser = argparse.ArgumentParser(
        prog="ssokit",
        description="ssokit configuration and session tools",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Show or export configuration",
    )
    config_group = config_parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration",
    )
    config_group.add_argument(
        "--toml",
        action="store_true",
        help="Export configuration as TOML",
    )
    config_group.add_argument(
        "--env",
        action="store_true",
        help="Export configuration as environment variables",
    )
    config_group.add_argument(
        "--sources",
        action="store_true",
        help="Show configuration file sources",
    )
    config_parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output file path (default: stdout)",
    )

    # init command
    init_parser = subparsers.add_parser(
        "init",
        help="Initialize an ssokit.toml configuration file",
    )
    init_parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Overwrite existing configuration file",
    )
    init_parser.add_argument(
        "--path",
        "-p",
        type=str,
        default="ssokit.toml",
        help="Path for configuration file (default: ssokit.toml)",
    )

    # session commands
    subparsers.add_parser("status", help="Show the stored session")

    login_parser = subparsers.add_parser("login", help="Log in through the system browser")
    login_parser.add_argument(
        "--acr",
        action="append",
        default=[],
        metavar="VALUE",
        help="Requested acr value (repeatable), e.g. internal, bankid, tupas",
    )
    login_parser.add_argument(
        "--prompt",
        type=str,
        default=None,
        help="OpenID Connect prompt parameter (e.g. login, none)",
    )
    login_parser.add_argument(
        "--scope",
        action="append",
        default=[],
        metavar="SCOPE",
        help="Extra scope to request (repeatable)",
    )

    subparsers.add_parser("logout", help="Log out through the system browser")
    subparsers.add_parser("clear", help="Delete the stored session")

    args = parser.parse_args(argv)

    _configure_logging(debug=args.debug)

    if args.command == "config":
        return handle_config(args)
    if args.command == "init":
        return handle_init(args)
    if args.command == "status":
        return asyncio.run(handle_status(args))
    if args.command == "login":
        return asyncio.run(handle_login(args))
    if args.command == "logout":
        return asyncio.run(handle_logout(args))
    if args.command == "clear":
        return asyncio.run(handle_clear(args))
    parser.print_help()
    return 0


def _configure_logging(debug: bool) -> None:
    from .config import get_settings
    from .log import configure_from_settings, enable_debug

    configure_from_settings(get_settings().log)
    if debug:
        enable_debug()


def handle_config(args: argparse.Namespace) -> int:
    """Handle the config command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    from .config import SSOKitSettings

    if args.sources:
        return show_config_sources()

    settings = SSOKitSettings()

    if args.toml:
        output = settings.to_toml()
    elif args.env:
        output = settings.to_env()
    else:
        output = settings.show()

    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
        print(f"Configuration written to {args.output}")
    else:
        print(output)

    return 0


def handle_init(args: argparse.Namespace) -> int:
    """Handle the init command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    from .config import SSOKitSettings

    path = Path(args.path)

    if path.exists() and not args.force:
        print(f"Error: {path} already exists. Use --force to overwrite.", file=sys.stderr)
        return 1

    header = """# ssokit Configuration File
#
# Environment variables can override any setting:
#   SSOKIT_OIDC__CLIENT_ID="my-app"
#   SSOKIT_OIDC__ISSUER_URL="https://login.example.com"
#   SSOKIT_STORAGE__BACKEND="memory"
#   SSOKIT_LOG__LEVEL="debug"
#
# Use nested keys with __ (double underscore) delimiter.

"""
    path.write_text(header + SSOKitSettings().to_toml(), encoding="utf-8")
    print(f"Created {path}")

    return 0


def show_config_sources() -> int:
    """Show configuration file sources and their status.

    Returns
    -------
    int
        Exit code.
    """
    if sys.platform == "win32":
        user_config = Path(os.environ.get("APPDATA", "~")) / "ssokit" / "config.toml"
    else:
        user_config = Path("~/.config/ssokit/config.toml")

    sources = [
        ("pyproject.toml [tool.ssokit]", Path("pyproject.toml")),
        ("./ssokit.toml", Path("ssokit.toml")),
        ("User config", user_config.expanduser()),
    ]
    env_config = os.environ.get("SSOKIT_CONFIG_FILE")
    if env_config:
        sources.append(("SSOKIT_CONFIG_FILE", Path(env_config)))

    print("Configuration Sources (in order of precedence):\n")
    print(f"{'Source':<40} {'Status':<15} {'Path'}")
    print("-" * 80)
    print(f"{'Built-in defaults':<40} {'Active':<15}")

    for name, path in sources:
        status = "Found" if path.exists() else "Not found"
        print(f"{name:<40} {status:<15} {path}")

    ssokit_vars = sorted(k for k in os.environ if k.startswith("SSOKIT_"))
    status = f"{len(ssokit_vars)} vars" if ssokit_vars else "No vars"
    shown = ", ".join(ssokit_vars[:3]) + ("..." if len(ssokit_vars) > 3 else "")
    print(f"{'Environment variables':<40} {status:<15} {shown}")

    print("\nNote: Later sources override earlier ones.")
    return 0


def format_session(session: Session | None) -> str:
    """Describe a session for display, without tokens."""
    if session is None:
        return "No session"
    claims = session.claims
    lines = [
        f"Subject:  {claims.sub if claims else '-'}",
        f"Name:     {(claims.name if claims else None) or '-'}",
        f"ACR:      {(claims.acr if claims else None) or '-'}",
        f"Status:   {session.status.value}",
        f"Online:   {'yes' if session.online else 'no'}",
    ]
    if session.expires_at is not None:
        expires = datetime.fromtimestamp(session.expires_at, tz=timezone.utc)
        lines.append(f"Expires:  {expires.isoformat()}")
    return "\n".join(lines)


def _build_manager() -> SessionManager:
    from .manager import SessionManager

    return SessionManager.from_settings()


async def handle_status(args: argparse.Namespace) -> int:  # pylint: disable=unused-argument
    """Print the stored session."""
    from .config import get_settings
    from .storage import get_session_storage

    storage_settings = get_settings().storage
    storage = get_session_storage(
        storage_settings.backend,
        service_name=storage_settings.service_name,
        key=storage_settings.key,
    )
    print(format_session(await storage.load()))
    return 0


async def handle_login(args: argparse.Namespace) -> int:
    """Restore the stored session, then log in through the browser."""
    try:
        manager = _build_manager()
    except SSOKitError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        try:
            await manager.initialize()
        except SessionError as e:
            print(f"Stored session could not be refreshed: {e.message}", file=sys.stderr)
        session = await manager.present_login(
            extra_scopes=args.scope,
            acr_values=args.acr,
            prompt=args.prompt,
        )
    except SSOKitError as e:
        print(f"Login failed: {e}", file=sys.stderr)
        return 1
    finally:
        await manager.close()

    print(format_session(session))
    return 0


async def handle_logout(args: argparse.Namespace) -> int:  # pylint: disable=unused-argument
    """Restore the stored session, then log it out."""
    try:
        manager = _build_manager()
    except SSOKitError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        try:
            await manager.initialize()
        except SessionError as e:
            print(f"Stored session could not be refreshed: {e.message}", file=sys.stderr)
        await manager.logout()
    except SSOKitError as e:
        print(f"Logout failed: {e}", file=sys.stderr)
        return 1
    finally:
        await manager.close()

    print("Logged out")
    return 0


async def handle_clear(args: argparse.Namespace) -> int:  # pylint: disable=unused-argument
    """Delete all stored session data."""
    try:
        manager = _build_manager()
    except SSOKitError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    await manager.delete_all_data()
    await manager.close()
    print("Session data deleted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
