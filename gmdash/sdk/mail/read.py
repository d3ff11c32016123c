"""Gmail message read operations."""

import base64
import binascii
import logging
from email.message import Message
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..auth import Credential
from ..exceptions import TransformError, ValidationError
from ..timing import time_api_call
from .models import AttachmentInfo, NormalizedEmail
from .service import USER_ID, get_gmail_service, provider_call

logger = logging.getLogger(__name__)

# Body candidates in order of preference
BODY_MIME_TYPES = ("text/html", "text/plain")


def decode_base64url(data: str) -> bytes:
    """
    Decode a base64url string that may lack padding.

    Raises:
        binascii.Error: If the data is not valid base64.
    """
    standard = data.replace("-", "+").replace("_", "/")
    standard += "=" * (-len(standard) % 4)
    return base64.b64decode(standard, validate=True)


def get_header(headers: List[Dict[str, str]], name: str) -> str:
    """Get a header value by name, case-insensitively. Absent headers yield ''."""
    wanted = name.lower()
    for header in headers:
        if header.get("name", "").lower() == wanted:
            return header.get("value", "")
    return ""


def _charset(part: Dict[str, Any]) -> str:
    content_type = get_header(part.get("headers") or [], "Content-Type")
    if not content_type:
        return "utf-8"
    msg = Message()
    msg["Content-Type"] = content_type
    return msg.get_content_charset() or "utf-8"


def _walk_parts(parts: List[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
    """Yield MIME parts depth-first, in document order."""
    for part in parts:
        yield part
        if part.get("parts"):
            yield from _walk_parts(part["parts"])


def _decode_part(part: Dict[str, Any], message_id: str) -> str:
    data = part["body"]["data"]
    try:
        return decode_base64url(data).decode(_charset(part))
    except (binascii.Error, ValueError, LookupError) as e:
        logger.error(f"Error decoding body of message {message_id}: {e}")
        raise TransformError(
            f"Failed to decode body of message {message_id}: {e}",
            operation="decode body",
            target=message_id,
        ) from e


def _has_data(part: Dict[str, Any]) -> bool:
    return bool((part.get("body") or {}).get("data"))


def select_body(payload: Dict[str, Any], message_id: str = "") -> str:
    """
    Pick and decode the message body.

    Precedence: the first text/html part, then the first text/plain part,
    then the payload's own body data. A message with none of these has an
    empty body.
    """
    parts = list(_walk_parts(payload.get("parts") or []))
    for mime_type in BODY_MIME_TYPES:
        for part in parts:
            if part.get("mimeType") == mime_type and _has_data(part):
                return _decode_part(part, message_id)
    if _has_data(payload):
        return _decode_part(payload, message_id)
    return ""


def extract_attachments(payload: Dict[str, Any]) -> Tuple[AttachmentInfo, ...]:
    """
    Collect attachment metadata from a message payload.

    An attachment is a part carrying both a filename and an attachmentId.
    """
    attachments = []
    for part in _walk_parts(payload.get("parts") or []):
        body = part.get("body") or {}
        filename = part.get("filename", "")
        attachment_id = body.get("attachmentId")
        if filename and attachment_id:
            attachments.append(AttachmentInfo(
                attachment_id=attachment_id,
                filename=filename,
                mime_type=part.get("mimeType", "application/octet-stream"),
                size=body.get("size", 0),
            ))
    return tuple(attachments)


def normalize_message(msg: Dict[str, Any]) -> NormalizedEmail:
    """
    Convert a Gmail ``format=full`` message resource into a NormalizedEmail.

    Raises:
        TransformError: If the payload or its headers are malformed, or the
            selected body cannot be decoded.
    """
    message_id = msg.get("id", "")
    payload = msg.get("payload") or {}
    headers = (payload.get("headers") or []) if isinstance(payload, dict) else None
    if not isinstance(headers, list) or not all(isinstance(h, dict) for h in headers):
        raise TransformError(
            f"Malformed payload in message {message_id}",
            operation="parse headers",
            target=message_id,
        )

    return NormalizedEmail(
        id=message_id,
        thread_id=msg.get("threadId", ""),
        label_ids=frozenset(msg.get("labelIds") or []),
        snippet=msg.get("snippet", ""),
        history_id=msg.get("historyId", ""),
        internal_date=msg.get("internalDate", ""),
        subject=get_header(headers, "Subject"),
        sender=get_header(headers, "From"),
        to=get_header(headers, "To"),
        date=get_header(headers, "Date"),
        body=select_body(payload, message_id),
        attachments=extract_attachments(payload),
    )


def _require_id(value: str, what: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"A {what} is required", operation=f"validate {what}")


@time_api_call
def get_message(credential: Credential, message_id: str) -> NormalizedEmail:
    """
    Retrieve and normalize a single Gmail message.

    Args:
        credential: A valid credential
        message_id: The Gmail message ID

    Returns:
        NormalizedEmail for the message

    Raises:
        MessageNotFoundError: If the id does not exist.
        TransformError: If headers or body cannot be decoded.
        ProviderError: On any other Gmail failure.
    """
    _require_id(message_id, "message id")
    service = get_gmail_service(credential)
    logger.debug(f"Retrieving message with ID: {message_id}")

    with provider_call("get message", message_id):
        msg = service.users().messages().get(
            userId=USER_ID, id=message_id, format="full"
        ).execute()

    email = normalize_message(msg)
    logger.debug(f"Successfully retrieved message: '{email.subject}'")
    return email


@time_api_call
def get_attachment(credential: Credential, message_id: str, attachment_id: str) -> bytes:
    """
    Download an attachment from a Gmail message.

    Returns:
        The decoded attachment content
    """
    _require_id(message_id, "message id")
    _require_id(attachment_id, "attachment id")
    service = get_gmail_service(credential)
    logger.debug(f"Downloading attachment {attachment_id} from message {message_id}")

    with provider_call("get attachment", message_id):
        attachment = service.users().messages().attachments().get(
            userId=USER_ID, messageId=message_id, id=attachment_id
        ).execute()

    try:
        data = decode_base64url(attachment.get("data", ""))
    except binascii.Error as e:
        raise TransformError(
            f"Failed to decode attachment {attachment_id}: {e}",
            operation="decode attachment",
            target=message_id,
        ) from e

    logger.debug(f"Downloaded attachment: {len(data)} bytes")
    return data
