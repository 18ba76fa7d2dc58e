"""CLI entry point for ``slack-tools``.

Subcommands
-----------
``slack-tools auth``                 – get validated credentials (keychain, else Slack app).
``slack-tools auth --status``        – check whether credentials are cached in the keychain.
``slack-tools auth --logout``        – delete the cached credentials.
``slack-tools auth-from-app``        – extract credentials from the Slack desktop app.
``slack-tools auth-from-curl``       – read credentials from a "Copy as cURL" command.
``slack-tools clear``                – same as ``auth --logout``.
"""

from __future__ import annotations

import argparse
import asyncio
import re
import sys

from slack_tools.auth import CredentialBroker, resolve_workspace
from slack_tools.errors import SlackAuthError, ValidationFailedError
from slack_tools.log_utils import configure_logging
from slack_tools.models import CredentialSet
from slack_tools.settings import get_settings

# ── Helpers ─────────────────────────────────────────────────────────────────

_CURL_TOKEN_RE = re.compile(r"(xoxc-[A-Za-z0-9-]+)")
_CURL_COOKIE_RE = re.compile(r"\bd=(xoxd-[A-Za-z0-9%._+/=-]+)")


def get_auth_error_message(error: Exception) -> str:
    """Return the authentication help text shown after a validation failure."""
    return f"""
Authentication failed:

{error}

Please configure authentication using one of these methods:

1. Environment Variables:
   Set the SLACK_TOKEN and SLACK_COOKIE environment variables:

   export SLACK_TOKEN=xoxc-your-token
   export SLACK_COOKIE=xoxd-your-cookie

2. System Keychain:
   Store credentials securely using one of these commands:

   a) From Slack Desktop App (more reliable):
      slack-tools auth-from-app --store

   b) From Browser Network Request:
      slack-tools auth-from-curl --store
""".strip()


def _extract_auth_from_curl(curl_command: str) -> tuple[str, str] | None:
    """Return ``(token, cookie)`` found in a copied curl command, or None.

    The token may appear in an Authorization header or the form body; the
    cookie is the ``d=`` entry of the Cookie header or ``-b`` argument.
    """
    token = _CURL_TOKEN_RE.search(curl_command)
    cookie = _CURL_COOKIE_RE.search(curl_command)
    if not token or not cookie:
        return None
    return token.group(1), cookie.group(1)


def _read_curl_command() -> str:
    """Read a pasted curl command from stdin until a blank line or EOF.

    Trailing backslashes (shell line continuations) are joined.
    """
    print(
        "Paste your curl command below (press Enter on an empty line to finish):",
        file=sys.stderr,
    )
    parts: list[str] = []
    for line in sys.stdin:
        line = line.rstrip("\n")
        if not line.strip():
            if parts:
                break
            continue
        parts.append(line[:-1] if line.endswith("\\") else line)
    return " ".join(parts).strip()


def _print_credentials(credentials: CredentialSet, broker: CredentialBroker) -> None:
    if broker.identity is not None:
        print(f"✓ Authenticated as {broker.identity.user} ({broker.identity.team})")
    print("Workspaces:")
    for url, token in credentials.tokens.items():
        print(f"  - {token.name} ({url})")


def _fail(error: Exception) -> None:
    if isinstance(error, ValidationFailedError):
        print(get_auth_error_message(error), file=sys.stderr)
    else:
        print(f"✗ {error}", file=sys.stderr)
    sys.exit(1)


# ── Subcommands ─────────────────────────────────────────────────────────────


def _run_auth(args: argparse.Namespace) -> None:
    """Handle ``slack-tools auth``."""
    if args.status:
        _auth_status()
        return
    if args.logout:
        _auth_logout()
        return
    _auth_login(args.workspace)


def _auth_status() -> None:
    """Show whether credentials are cached in the keychain."""
    broker = CredentialBroker(get_settings())
    stored = broker.stored_credentials()
    if stored is not None:
        print(
            f"✓ Credentials for {len(stored.tokens)} workspace(s) are stored "
            "in the system keychain."
        )
    elif get_settings().has_env_credentials:
        print("⚠ No credentials in keychain, but SLACK_TOKEN and SLACK_COOKIE are set.")
    else:
        print("✗ No credentials found. Run 'slack-tools auth' to extract them.")


def _auth_logout() -> None:
    """Delete the cached credentials."""
    broker = CredentialBroker(get_settings())
    asyncio.run(broker.clear_credentials())
    print("✓ Stored credentials removed from system keychain.")


def _auth_login(workspace: str | None) -> None:
    """Resolve validated credentials and print who they belong to."""
    broker = CredentialBroker(get_settings())
    try:
        credentials = asyncio.run(broker.get_credentials(workspace))
    except SlackAuthError as exc:
        _fail(exc)
        return
    _print_credentials(credentials, broker)


def _run_auth_from_app(args: argparse.Namespace) -> None:
    """Handle ``slack-tools auth-from-app``."""
    broker = CredentialBroker(get_settings())
    try:
        credentials = asyncio.run(broker.extract_fresh())
    except SlackAuthError as exc:
        _fail(exc)
        return

    if args.store:
        broker.save_credentials(credentials)
        print("✓ Stored authentication in system keychain.")

    credentials = resolve_workspace(credentials, args.workspace)
    for url, token in credentials.tokens.items():
        print(f"Workspace: {token.name} ({url})")
        print(f"Token: {token.token}")
    print(f"Cookie: {credentials.cookie.value}")


def _run_auth_from_curl(args: argparse.Namespace) -> None:
    """Handle ``slack-tools auth-from-curl``."""
    curl_command = _read_curl_command()
    found = _extract_auth_from_curl(curl_command)
    if found is None:
        print(
            "✗ Could not find an xoxc- token and d=xoxd- cookie in the curl command.",
            file=sys.stderr,
        )
        sys.exit(1)

    token, cookie = found
    broker = CredentialBroker(get_settings())
    try:
        credentials = asyncio.run(
            broker.import_credentials(token, cookie, persist=args.store)
        )
    except SlackAuthError as exc:
        _fail(exc)
        return

    if args.store:
        print("✓ Stored authentication in system keychain.")
    _print_credentials(credentials, broker)


def _run_clear(_args: argparse.Namespace) -> None:
    """Handle ``slack-tools clear``."""
    _auth_logout()


# ── Argument parser ─────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slack-tools",
        description="Recover and manage Slack desktop session credentials",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log debug output (secrets are redacted).",
    )
    subparsers = parser.add_subparsers(dest="command")

    # ``slack-tools auth``
    auth_parser = subparsers.add_parser(
        "auth",
        help="Get validated credentials, extracting them from Slack if needed.",
    )
    auth_parser.add_argument(
        "-w", "--workspace", help="Workspace URL or name to select."
    )
    auth_group = auth_parser.add_mutually_exclusive_group()
    auth_group.add_argument(
        "--status",
        action="store_true",
        help="Check if credentials are stored in the keychain.",
    )
    auth_group.add_argument(
        "--logout",
        action="store_true",
        help="Remove stored credentials from the keychain.",
    )

    # ``slack-tools auth-from-app``
    app_parser = subparsers.add_parser(
        "auth-from-app",
        help="Extract credentials directly from the Slack desktop app.",
    )
    app_parser.add_argument(
        "-w", "--workspace", help="Workspace URL or name to print."
    )
    app_parser.add_argument(
        "--store", action="store_true", help="Store the extracted credentials."
    )

    # ``slack-tools auth-from-curl``
    curl_parser = subparsers.add_parser(
        "auth-from-curl",
        help="Read credentials from a browser 'Copy as cURL' command.",
    )
    curl_parser.add_argument(
        "--store", action="store_true", help="Store the extracted credentials."
    )

    # ``slack-tools clear``
    subparsers.add_parser("clear", help="Clear stored credentials from the keychain.")

    return parser


_COMMANDS = {
    "auth-from-app": _run_auth_from_app,
    "auth-from-curl": _run_auth_from_curl,
    "clear": _run_clear,
}


def main() -> None:
    """CLI entry point for ``slack-tools``."""
    parser = _build_parser()
    args = parser.parse_args()
    configure_logging(args.debug)

    if args.command in _COMMANDS:
        _COMMANDS[args.command](args)
    elif args.command == "auth":
        _run_auth(args)
    else:
        parser.print_help()
