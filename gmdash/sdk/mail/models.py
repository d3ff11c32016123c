"""Application-level mail records."""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Tuple

from ..exceptions import ValidationError

UNREAD = "UNREAD"
INBOX = "INBOX"


@dataclass(frozen=True)
class AttachmentInfo:
    """Metadata of an attachment on a received message."""

    attachment_id: str
    filename: str
    mime_type: str
    size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attachmentId": self.attachment_id,
            "filename": self.filename,
            "mimeType": self.mime_type,
            "size": self.size,
        }


@dataclass(frozen=True)
class NormalizedEmail:
    """A Gmail message after header and body extraction.

    Built fresh on every fetch and never mutated.
    """

    id: str
    thread_id: str
    label_ids: FrozenSet[str]
    snippet: str
    history_id: str
    internal_date: str
    subject: str
    sender: str
    to: str
    date: str
    body: str
    attachments: Tuple[AttachmentInfo, ...] = ()

    @property
    def is_unread(self) -> bool:
        return UNREAD in self.label_ids

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "threadId": self.thread_id,
            "labelIds": sorted(self.label_ids),
            "snippet": self.snippet,
            "historyId": self.history_id,
            "internalDate": self.internal_date,
            "subject": self.subject,
            "from": self.sender,
            "to": self.to,
            "date": self.date,
            "body": self.body,
            "isUnread": self.is_unread,
            "attachments": [a.to_dict() for a in self.attachments],
        }


@dataclass(frozen=True)
class OutboundAttachment:
    filename: str
    content: bytes
    mime_type: str = "application/octet-stream"


@dataclass(frozen=True)
class OutboundEmail:
    """A message to send. Consumed once by ``send_message``."""

    to: str
    subject: str
    body: str
    cc: Optional[str] = None
    bcc: Optional[str] = None
    attachments: Tuple[OutboundAttachment, ...] = ()


@dataclass(frozen=True)
class Label:
    id: str
    name: str
    label_list_visibility: Optional[str] = None
    message_list_visibility: Optional[str] = None
    type: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Label":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            label_list_visibility=data.get("labelListVisibility"),
            message_list_visibility=data.get("messageListVisibility"),
            type=data.get("type"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "labelListVisibility": self.label_list_visibility,
            "messageListVisibility": self.message_list_visibility,
            "type": self.type,
        }


@dataclass(frozen=True)
class MessageFilter:
    """Selection for ``list_messages``.

    Raises:
        ValidationError: If max_results is below 1.
    """

    max_results: int = 20
    label_ids: FrozenSet[str] = field(default_factory=frozenset)
    query: str = ""

    def __post_init__(self):
        if isinstance(self.max_results, bool) or not isinstance(self.max_results, int) \
                or self.max_results < 1:
            raise ValidationError(
                f"max_results must be a positive integer, got {self.max_results!r}",
                operation="list messages",
            )
        # Accept any iterable of label ids
        object.__setattr__(self, "label_ids", frozenset(self.label_ids))
