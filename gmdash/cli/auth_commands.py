"""CLI commands for the OAuth login flow."""

import json
import logging

import click

from gmdash.sdk.mail import get_profile_email

from . import decorators
from .decorators import report_errors, require_credential, session_option

logger = logging.getLogger(__name__)


@click.group()
def auth():
    """Log in to Gmail and manage sessions."""
    pass


@auth.command()
@session_option
@report_errors
def url(session_id):
    """Print the consent URL. The session name is passed as OAuth state."""
    guard = decorators.build_guard()
    click.echo(guard.manager.build_authorization_url(state=session_id))


@auth.command()
@click.argument('code')
@session_option
@report_errors
def login(code, session_id):
    """Exchange an authorization CODE and store it in the session."""
    guard = decorators.build_guard()
    credential = guard.login(session_id, code)
    email = get_profile_email(credential)
    logger.info(f"User {email} authenticated successfully")
    click.echo(json.dumps({"session": session_id, "email": email}, indent=2))


@auth.command()
@session_option
@report_errors
def logout(session_id):
    """Forget the session's credential."""
    decorators.build_guard().logout(session_id)
    click.echo(f"Logged out of session '{session_id}'.")


@auth.command()
@require_credential
def whoami(credential):
    """Show the email address of the session's account."""
    click.echo(json.dumps({"email": get_profile_email(credential)}, indent=2))
