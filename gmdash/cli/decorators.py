"""CLI decorators for session handling and error reporting."""

import json
import logging
import sys
from functools import wraps

import click

from gmdash.sdk.auth import CredentialManager
from gmdash.sdk.config import get_config_value
from gmdash.sdk.exceptions import GmdashError
from gmdash.sdk.session import FileSessionStore, SessionGuard

logger = logging.getLogger(__name__)


def build_guard() -> SessionGuard:
    """Session guard over the configured OAuth client and session files."""
    return SessionGuard(CredentialManager.from_config(), FileSessionStore())


def default_session() -> str:
    return get_config_value("session.default", "default")


def session_option(f):
    """Add the --session option, defaulting to ``session.default``."""
    return click.option(
        '--session', 'session_id', default=default_session, show_default="session.default",
        help='Session name holding the credential.',
    )(f)


def report_errors(f):
    """
    Print gmdash errors as a JSON error payload on stderr and exit 1.

    Authentication failures also print how to log in again.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except GmdashError as e:
            logger.debug(f"Command failed: {e}", exc_info=True)
            click.echo(json.dumps(e.to_dict(), indent=2), err=True)
            if e.requires_reauth:
                click.secho("Not authenticated.", fg="red", err=True)
                click.echo("\nTo fix:", err=True)
                click.echo("  gmdash auth url      # open the consent page", err=True)
                click.echo("  gmdash auth login <code>", err=True)
            sys.exit(1)
    return decorated_function


def require_credential(f):
    """
    Resolve a valid credential for --session and pass it as ``credential``.

    Expired access tokens are refreshed and written back before the command
    runs; a session whose refresh token is rejected is deleted.
    """
    @session_option
    @report_errors
    @wraps(f)
    def decorated_function(*args, session_id, **kwargs):
        credential = build_guard().credential_for(session_id)
        return f(*args, credential=credential, **kwargs)
    return decorated_function
