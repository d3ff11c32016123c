"""Gmail message send operations."""

import base64
import logging
from email import encoders, policy
from email.header import Header
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, getaddresses
from typing import Any, Dict, List, Tuple

from ..auth import Credential
from ..exceptions import SendError
from ..timing import time_api_call
from .models import OutboundEmail
from .service import USER_ID, get_gmail_service, provider_call

logger = logging.getLogger(__name__)

CRLF = "\r\n"

ADDRESS_HEADERS = ("To", "Cc", "Bcc")


def encode_base64url(raw: bytes) -> str:
    """Base64url-encode without padding, as Gmail's ``raw`` field expects."""
    encoded = base64.b64encode(raw).decode("ascii")
    return encoded.replace("+", "-").replace("/", "_").rstrip("=")


def _header_value(value: str) -> str:
    """RFC 2047-encode a header value that is not plain ASCII."""
    try:
        value.encode("ascii")
    except UnicodeEncodeError:
        return Header(value, "utf-8").encode(maxlinelen=0)
    return value


def _address_value(name: str, value: str, draft: OutboundEmail) -> str:
    """
    Format an address list, RFC 2047-encoding display names only.

    Addresses themselves stay plain so the header remains parseable.
    """
    try:
        value.encode("ascii")
    except UnicodeEncodeError:
        pass
    else:
        return value

    addresses = getaddresses([value])
    if not addresses or not all(address for _, address in addresses):
        raise SendError(
            f"Failed to send email: invalid address in {name} header",
            operation="compose message",
            target=draft.to,
        )
    try:
        return ", ".join(
            formataddr((display_name, address), charset="utf-8")
            for display_name, address in addresses
        )
    except UnicodeError as e:
        raise SendError(
            f"Failed to send email: non-ASCII address in {name} header",
            operation="compose message",
            target=draft.to,
        ) from e


def _address_headers(draft: OutboundEmail) -> List[Tuple[str, str]]:
    """Validate the draft and return its headers in wire order."""
    if not draft.to or not draft.to.strip():
        raise SendError(
            "Failed to send email: a recipient is required",
            operation="compose message",
        )

    headers = [("To", draft.to), ("Subject", draft.subject or "")]
    if draft.cc:
        headers.append(("Cc", draft.cc))
    if draft.bcc:
        headers.append(("Bcc", draft.bcc))

    for name, value in headers:
        if "\r" in value or "\n" in value:
            raise SendError(
                f"Failed to send email: line break in {name} header",
                operation="compose message",
                target=draft.to,
            )
    encoded = []
    for name, value in headers:
        if name in ADDRESS_HEADERS:
            encoded.append((name, _address_value(name, value, draft)))
        else:
            encoded.append((name, _header_value(value)))
    return encoded


def _compose_with_attachments(draft: OutboundEmail, headers: List[Tuple[str, str]]) -> bytes:
    message = MIMEMultipart("mixed")
    for name, value in headers:
        message[name] = value
    message.attach(MIMEText(draft.body, "html", "utf-8"))

    for attachment in draft.attachments:
        maintype, _, subtype = attachment.mime_type.partition("/")
        if not subtype:
            maintype, subtype = "application", "octet-stream"
        part = MIMEBase(maintype, subtype)
        part.set_payload(attachment.content)
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
        message.attach(part)

    return message.as_bytes(policy=policy.SMTP)


def compose_message(draft: OutboundEmail) -> bytes:
    """
    Compose the RFC 822 bytes for a draft.

    Without attachments the message is a single text/html part: content
    headers, To, Subject, optional Cc and Bcc, a blank line and the body,
    joined with CRLF. With attachments a multipart/mixed message is built.

    Raises:
        SendError: If the recipient is missing or a header holds a line break.
    """
    headers = _address_headers(draft)
    if draft.attachments:
        return _compose_with_attachments(draft, headers)

    lines = [
        "Content-Type: text/html; charset=utf-8",
        "MIME-Version: 1.0",
    ]
    lines.extend(f"{name}: {value}" for name, value in headers)
    lines.extend(["", draft.body or ""])
    return CRLF.join(lines).encode("utf-8")


@time_api_call
def send_message(credential: Credential, draft: OutboundEmail) -> Dict[str, Any]:
    """
    Send an email message via Gmail.

    Args:
        credential: A valid credential
        draft: The message to send

    Returns:
        Dict containing:
            - id: Message ID of the sent email
            - threadId: Thread ID

    Raises:
        SendError: If composing fails or Gmail rejects the message
    """
    raw = encode_base64url(compose_message(draft))
    service = get_gmail_service(credential)
    logger.debug(f"Sending email to: {draft.to}, subject: {draft.subject}")

    with provider_call("send email", draft.to, error_class=SendError):
        result = service.users().messages().send(
            userId=USER_ID, body={"raw": raw}
        ).execute()

    logger.info(f"Email sent successfully: {result.get('id')}")
    return {
        "id": result.get("id"),
        "threadId": result.get("threadId"),
    }
