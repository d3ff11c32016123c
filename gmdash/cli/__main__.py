"""gmdash CLI - Command-line interface for the Gmail dashboard core."""

import json
import logging
import mimetypes
import os
from pathlib import Path

import click
from dotenv import load_dotenv

from gmdash import __version__
from gmdash.sdk import mail as sdk_mail

from .auth_commands import auth as auth_module
from .config_commands import config_group
from .decorators import require_credential


# Configure logging at the application level
if not logging.root.handlers:
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO),
                        format='%(asctime)s - %(levelname)s - %(message)s')
# Suppress noisy INFO logs from googleapiclient and google_auth_oauthlib
logging.getLogger('googleapiclient.discovery').setLevel(logging.WARNING)
logging.getLogger('googleapiclient.discovery_cache').setLevel(logging.WARNING)
logging.getLogger('google_auth_oauthlib.flow').setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


@click.group()
@click.version_option(__version__, prog_name="gmdash")
def gmdash():
    """Gmail dashboard CLI.

    Browse, send and organize Gmail from the command line. Output is JSON.
    """
    pass


# Mail group
@click.group()
def mail():
    """Operations related to Gmail messages."""
    pass


@mail.command(name='list')
@click.option('--max-results', type=click.IntRange(min=1), default=20,
              help='Maximum number of messages to return.')
@click.option('--label', 'labels', multiple=True,
              help='Only messages with this label id (repeatable).')
@click.option('--query', default='', help='Gmail search query, e.g. "from:someone@example.com".')
@require_credential
def list_command(max_results, labels, query, credential):
    """List messages with full bodies."""
    message_filter = sdk_mail.MessageFilter(
        max_results=max_results, label_ids=frozenset(labels), query=query
    )
    emails = sdk_mail.list_messages(credential, message_filter)
    logger.info(f"Found {len(emails)} messages")
    click.echo(json.dumps([email.to_dict() for email in emails], indent=2))


@mail.command(name='read')
@click.argument('message_id')
@require_credential
def read_command(message_id, credential):
    """Read a specific email by ID."""
    logger.debug(f"Executing mail read for message ID: '{message_id}'")
    email = sdk_mail.get_message(credential, message_id)
    click.echo(json.dumps(email.to_dict(), indent=2))


@mail.command(name='send')
@click.option('--to', required=True, help='Recipients (comma-separated).')
@click.option('--subject', default='', help='Subject line.')
@click.option('--body', default=None, help='HTML body.')
@click.option('--body-file', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help='Read the HTML body from a file.')
@click.option('--cc', default=None, help='CC recipients (comma-separated).')
@click.option('--bcc', default=None, help='BCC recipients (comma-separated).')
@click.option('--attach', 'attachments', multiple=True,
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='File to attach (repeatable).')
@require_credential
def send_command(to, subject, body, body_file, cc, bcc, attachments, credential):
    """Send an email."""
    if body_file is not None:
        body = body_file.read_text(encoding="utf-8")
    draft = sdk_mail.OutboundEmail(
        to=to,
        subject=subject,
        body=body or "",
        cc=cc,
        bcc=bcc,
        attachments=tuple(_load_attachment(path) for path in attachments),
    )
    result = sdk_mail.send_message(credential, draft)
    click.echo(json.dumps(result, indent=2))


def _load_attachment(path: Path) -> sdk_mail.OutboundAttachment:
    mime_type, _ = mimetypes.guess_type(path.name)
    return sdk_mail.OutboundAttachment(
        filename=path.name,
        content=path.read_bytes(),
        mime_type=mime_type or "application/octet-stream",
    )


def _label_state_command(name, operation, help_text):
    """Build a command that applies a label state change to one message."""
    @click.argument('message_id')
    @require_credential
    def command(message_id, credential):
        label_ids = operation(credential, message_id)
        click.echo(json.dumps({"id": message_id, "labelIds": sorted(label_ids)}, indent=2))
    command.__doc__ = help_text
    return click.command(name=name)(command)


mail.add_command(_label_state_command('mark-read', sdk_mail.mark_read, "Mark an email as read."))
mail.add_command(_label_state_command('mark-unread', sdk_mail.mark_unread, "Mark an email as unread."))
mail.add_command(_label_state_command('archive', sdk_mail.archive, "Remove an email from the inbox."))
mail.add_command(_label_state_command('trash', sdk_mail.trash, "Move an email to the trash."))


@mail.command(name='attachment')
@click.argument('message_id')
@click.argument('attachment_id')
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path), required=True,
              help='Where to write the attachment.')
@require_credential
def attachment_command(message_id, attachment_id, output, credential):
    """Download an attachment of an email."""
    data = sdk_mail.get_attachment(credential, message_id, attachment_id)
    output.write_bytes(data)
    click.echo(json.dumps({"path": str(output), "size": len(data)}, indent=2))


# Labels group
@click.group()
def labels():
    """Operations related to Gmail labels."""
    pass


@labels.command(name='list')
@require_credential
def labels_list(credential):
    """List all labels."""
    click.echo(json.dumps([label.to_dict() for label in sdk_mail.list_labels(credential)], indent=2))


@labels.command(name='create')
@click.argument('name')
@require_credential
def labels_create(name, credential):
    """Create a label shown in the label and message lists."""
    label = sdk_mail.create_label(credential, name)
    click.echo(json.dumps(label.to_dict(), indent=2))


gmdash.add_command(auth_module, name='auth')
gmdash.add_command(mail)
gmdash.add_command(labels)
gmdash.add_command(config_group, name='config')


def main():
    """Entry point for the CLI."""
    load_dotenv()
    gmdash()


if __name__ == "__main__":
    main()
