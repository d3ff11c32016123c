"""Gmail operations for gmdash SDK.

Every operation takes a valid ``Credential`` as its first argument and builds
its own Gmail client, so the module holds no state between calls.

Example usage:
    from gmdash.sdk import mail

    emails = mail.list_messages(credential, mail.MessageFilter(max_results=10))
    message = mail.get_message(credential, emails[0].id)
    mail.mark_read(credential, message.id)
"""

from .models import (
    AttachmentInfo,
    Label,
    MessageFilter,
    NormalizedEmail,
    OutboundAttachment,
    OutboundEmail,
)
from .service import get_gmail_service, get_profile_email
from .search import list_messages
from .read import get_message, get_attachment, decode_base64url
from .send import send_message, compose_message, encode_base64url
from .label import (
    set_labels,
    mark_read,
    mark_unread,
    archive,
    trash,
    list_labels,
    create_label,
)

__all__ = [
    "AttachmentInfo",
    "Label",
    "MessageFilter",
    "NormalizedEmail",
    "OutboundAttachment",
    "OutboundEmail",
    "get_gmail_service",
    "get_profile_email",
    "list_messages",
    "get_message",
    "get_attachment",
    "decode_base64url",
    "send_message",
    "compose_message",
    "encode_base64url",
    "set_labels",
    "mark_read",
    "mark_unread",
    "archive",
    "trash",
    "list_labels",
    "create_label",
]
