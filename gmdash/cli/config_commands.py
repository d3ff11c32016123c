"""CLI commands for viewing and changing gmdash configuration."""

import click
import yaml

from gmdash.sdk import config
from gmdash.sdk.auth import SCOPE_ALIASES
from gmdash.sdk.session import SESSION_ID_PATTERN


def _split_scopes(value):
    scopes = [scope.strip() for scope in value.split(",") if scope.strip()]
    for scope in scopes:
        if scope not in SCOPE_ALIASES and not scope.startswith("https://"):
            allowed = ", ".join(sorted(SCOPE_ALIASES))
            raise click.UsageError(
                f"Unknown scope '{scope}'. Use a scope URL or one of: {allowed}."
            )
    return scopes


def _session_name(value):
    if not SESSION_ID_PATTERN.match(value):
        raise click.UsageError(f"Invalid session name '{value}'.")
    return value


# Supported keys and how their string values are converted
ALLOWED_CONFIG = {
    "oauth.client_secrets": str,
    "oauth.redirect_uri": str,
    "oauth.scopes": _split_scopes,
    "session.default": _session_name,
}


@click.group(name='config')
def config_group():
    """Commands for managing gmdash configuration."""
    pass


@config_group.command('view')
def view_config():
    """Displays the current gmdash configuration."""
    click.echo(yaml.safe_dump(config.load_config(), default_flow_style=False))


@config_group.command('set')
@click.argument('key')
@click.argument('value')
def set_config(key, value):
    """
    Sets a configuration value for a supported key.

    \b
    Supported Keys:
      - oauth.client_secrets: Path to the OAuth client_secrets.json.
      - oauth.redirect_uri:   Callback URI registered for the client.
      - oauth.scopes:         Comma-separated scope aliases or URLs.
      - session.default:      Session used when --session is omitted.

    \b
    Examples:
      gmdash config set oauth.client_secrets ~/Downloads/client_secret.json
      gmdash config set oauth.scopes mail-read,mail-send
    """
    if key not in ALLOWED_CONFIG:
        supported = ", ".join(sorted(ALLOWED_CONFIG))
        raise click.UsageError(f"Configuration key '{key}' is not supported. Supported keys: {supported}.")

    converted = ALLOWED_CONFIG[key](value)
    config.set_config_value(key, converted)
    click.echo(f"✓ Set '{key}' to: {converted}")
