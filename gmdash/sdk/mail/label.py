"""Gmail label and message state operations."""

import logging
from typing import FrozenSet, Iterable, List

from ..auth import Credential
from ..exceptions import ValidationError
from ..timing import time_api_call
from .models import INBOX, UNREAD, Label
from .service import USER_ID, get_gmail_service, provider_call

logger = logging.getLogger(__name__)


@time_api_call
def set_labels(
    credential: Credential,
    message_id: str,
    add: Iterable[str] = (),
    remove: Iterable[str] = (),
) -> FrozenSet[str]:
    """
    Add and remove label ids on a message in a single modify call.

    Adding a label that is already present, or removing one that is absent,
    is a no-op on Gmail's side and not an error.

    Args:
        credential: A valid credential
        message_id: The Gmail message ID
        add: Label ids to add
        remove: Label ids to remove

    Returns:
        The message's label ids after the change
    """
    service = get_gmail_service(credential)
    body = {
        "addLabelIds": sorted(set(add)),
        "removeLabelIds": sorted(set(remove)),
    }

    with provider_call("modify labels for email", message_id):
        updated = service.users().messages().modify(
            userId=USER_ID, id=message_id, body=body
        ).execute()

    logger.debug(f"Modified labels for message {message_id}")
    return frozenset(updated.get("labelIds") or [])


def mark_read(credential: Credential, message_id: str) -> FrozenSet[str]:
    return set_labels(credential, message_id, remove=[UNREAD])


def mark_unread(credential: Credential, message_id: str) -> FrozenSet[str]:
    return set_labels(credential, message_id, add=[UNREAD])


def archive(credential: Credential, message_id: str) -> FrozenSet[str]:
    """Remove a message from the inbox without deleting it."""
    return set_labels(credential, message_id, remove=[INBOX])


@time_api_call
def trash(credential: Credential, message_id: str) -> FrozenSet[str]:
    """Move a message to the trash (a provider operation, not a label edit)."""
    service = get_gmail_service(credential)
    with provider_call("trash email", message_id):
        trashed = service.users().messages().trash(
            userId=USER_ID, id=message_id
        ).execute()
    logger.debug(f"Trashed message {message_id}")
    return frozenset(trashed.get("labelIds") or [])


@time_api_call
def list_labels(credential: Credential) -> List[Label]:
    """List all Gmail labels, system and user-defined."""
    service = get_gmail_service(credential)
    with provider_call("get labels"):
        results = service.users().labels().list(userId=USER_ID).execute()
    return [Label.from_api(label) for label in results.get("labels", [])]


@time_api_call
def create_label(credential: Credential, name: str) -> Label:
    """
    Create a user label shown in the label list and message list.

    Raises:
        DuplicateLabelError: If a label with this name already exists.
    """
    if not name or not name.strip():
        raise ValidationError("A label name is required", operation="create label")

    service = get_gmail_service(credential)
    create_body = {
        "name": name,
        "labelListVisibility": "labelShow",
        "messageListVisibility": "show",
    }
    logger.debug(f"Creating label '{name}'")
    with provider_call("create label", name):
        created = service.users().labels().create(
            userId=USER_ID, body=create_body
        ).execute()
    logger.debug(f"Created label '{name}' with ID: {created['id']}")
    return Label.from_api(created)
