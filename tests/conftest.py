"""
Shared fixtures for gmdash tests.

Provides:
- An in-memory fake of the Gmail API client (``FakeGmail``) that answers the
  same ``service.users().messages().get(...).execute()`` call chains the SDK
  makes, so nothing here touches the network.
- Credentials and an OAuth client config for the credential manager.
- An isolated config directory so tests never read ~/.config.
"""

import json
import base64
import threading
import time
from typing import Any, Dict, List, Optional

import httplib2
import pytest
from googleapiclient.errors import HttpError

from gmdash.sdk.auth import Credential, CredentialManager, now_ms


CLIENT_CONFIG = {
    "web": {
        "client_id": "test-client-id.apps.googleusercontent.com",
        "client_secret": "test-secret",
        "auth_uri": "https://accounts.google.com/o/oauth2/auth",
        "token_uri": "https://oauth2.googleapis.com/token",
        "redirect_uris": ["http://localhost:3000/auth/callback"],
    }
}


def b64url(text) -> str:
    """Base64url-encode text the way Gmail does (no padding)."""
    raw = text.encode("utf-8") if isinstance(text, str) else text
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def http_error(status: int, message: str = "error") -> HttpError:
    """Build the HttpError googleapiclient raises for a non-2xx response."""
    resp = httplib2.Response({"status": status})
    content = json.dumps({"error": {"code": status, "message": message}}).encode()
    return HttpError(resp, content)


def make_message(
    message_id: str,
    subject: str = "Hello",
    body: str = "hello",
    mime_type: str = "text/plain",
    label_ids: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """A minimal ``format=full`` message resource with a single body."""
    return {
        "id": message_id,
        "threadId": f"t-{message_id}",
        "labelIds": list(label_ids if label_ids is not None else ["INBOX"]),
        "snippet": body[:20],
        "historyId": "1000",
        "internalDate": "1700000000000",
        "payload": {
            "mimeType": mime_type,
            "headers": [
                {"name": "Subject", "value": subject},
                {"name": "From", "value": "alice@example.com"},
                {"name": "To", "value": "bob@example.com"},
                {"name": "Date", "value": "Mon, 1 Jan 2024 10:00:00 +0000"},
            ],
            "body": {"size": len(body), "data": b64url(body)},
        },
    }


class FakeRequest:
    """Stands in for googleapiclient's HttpRequest."""

    def __init__(self, fn, delay: float = 0.0):
        self._fn = fn
        self._delay = delay

    def execute(self):
        if self._delay:
            time.sleep(self._delay)
        return self._fn()


class _Attachments:
    def __init__(self, gmail: "FakeGmail"):
        self._gmail = gmail

    def get(self, userId, messageId, id):
        def run():
            key = (messageId, id)
            if key not in self._gmail.attachment_store:
                raise http_error(404, "Requested entity was not found.")
            data = self._gmail.attachment_store[key]
            return {"size": len(data), "data": b64url(data)}
        return FakeRequest(run)


class _Messages:
    def __init__(self, gmail: "FakeGmail"):
        self._gmail = gmail

    def list(self, userId, maxResults=100, labelIds=None, q=None):
        gmail = self._gmail
        gmail.calls.append(("list", {"maxResults": maxResults, "labelIds": labelIds, "q": q}))

        def run():
            gmail.raise_if_failing("list", None)
            ids = gmail.listing if gmail.listing is not None else list(gmail.message_store)
            return {
                "messages": [{"id": mid, "threadId": f"t-{mid}"} for mid in ids[:maxResults]],
                "resultSizeEstimate": len(ids),
            }
        return FakeRequest(run)

    def get(self, userId, id, format="full"):
        gmail = self._gmail
        gmail.calls.append(("get", id))

        def run():
            gmail.raise_if_failing("get", id)
            if id not in gmail.message_store:
                raise http_error(404, "Requested entity was not found.")
            result = json.loads(json.dumps(gmail.message_store[id]))
            with gmail.lock:
                gmail.completed.append(id)
            return result
        return FakeRequest(run, delay=gmail.delays.get(id, 0.0))

    def send(self, userId, body):
        gmail = self._gmail
        gmail.calls.append(("send", body))

        def run():
            gmail.raise_if_failing("send", None)
            gmail.sent.append(body["raw"])
            return {"id": f"sent-{len(gmail.sent)}", "threadId": "t-sent", "labelIds": ["SENT"]}
        return FakeRequest(run)

    def modify(self, userId, id, body):
        gmail = self._gmail
        gmail.calls.append(("modify", id, body))

        def run():
            gmail.raise_if_failing("modify", id)
            if id not in gmail.message_store:
                raise http_error(404, "Requested entity was not found.")
            message = gmail.message_store[id]
            labels = set(message.get("labelIds", []))
            labels.update(body.get("addLabelIds", []))
            labels.difference_update(body.get("removeLabelIds", []))
            message["labelIds"] = sorted(labels)
            return {"id": id, "threadId": message.get("threadId"), "labelIds": message["labelIds"]}
        return FakeRequest(run)

    def trash(self, userId, id):
        gmail = self._gmail
        gmail.calls.append(("trash", id))

        def run():
            if id not in gmail.message_store:
                raise http_error(404, "Requested entity was not found.")
            message = gmail.message_store[id]
            labels = set(message.get("labelIds", [])) - {"INBOX"}
            labels.add("TRASH")
            message["labelIds"] = sorted(labels)
            return {"id": id, "labelIds": message["labelIds"]}
        return FakeRequest(run)

    def attachments(self):
        return _Attachments(self._gmail)


class _Labels:
    def __init__(self, gmail: "FakeGmail"):
        self._gmail = gmail

    def list(self, userId):
        return FakeRequest(lambda: {"labels": list(self._gmail.label_store.values())})

    def create(self, userId, body):
        gmail = self._gmail
        gmail.calls.append(("create_label", body))

        def run():
            if any(label["name"] == body["name"] for label in gmail.label_store.values()):
                raise http_error(409, "Label name exists or conflicts")
            label = dict(body, id=f"Label_{len(gmail.label_store) + 1}", type="user")
            gmail.label_store[label["id"]] = label
            return label
        return FakeRequest(run)


class FakeGmail:
    """In-memory Gmail API double answering the SDK's call chains."""

    def __init__(self):
        self.message_store: Dict[str, Dict[str, Any]] = {}
        self.attachment_store: Dict[tuple, bytes] = {}
        self.label_store: Dict[str, Dict[str, Any]] = {
            "INBOX": {"id": "INBOX", "name": "INBOX", "type": "system"},
            "UNREAD": {"id": "UNREAD", "name": "UNREAD", "type": "system"},
        }
        self.listing: Optional[List[str]] = None
        self.delays: Dict[str, float] = {}
        self.failures: Dict[tuple, HttpError] = {}
        self.calls: List[tuple] = []
        self.completed: List[str] = []
        self.sent: List[str] = []
        self.email = "me@example.com"
        self.builds = 0
        self.lock = threading.Lock()

    def add(self, message: Dict[str, Any]) -> Dict[str, Any]:
        self.message_store[message["id"]] = message
        return message

    def fail(self, operation: str, target: Optional[str], status: int, message: str = "error"):
        self.failures[(operation, target)] = http_error(status, message)

    def raise_if_failing(self, operation: str, target: Optional[str]):
        error = self.failures.get((operation, target))
        if error is not None:
            raise error

    def users(self):
        return self

    def messages(self):
        return _Messages(self)

    def labels(self):
        return _Labels(self)

    def getProfile(self, userId):
        return FakeRequest(lambda: {"emailAddress": self.email})


@pytest.fixture
def fake_gmail(monkeypatch) -> FakeGmail:
    """Route every ``get_gmail_service`` call to one FakeGmail."""
    fake = FakeGmail()

    def fake_build(service_name, version, **kwargs):
        assert (service_name, version) == ("gmail", "v1")
        with fake.lock:
            fake.builds += 1
        return fake

    monkeypatch.setattr("gmdash.sdk.mail.service.build", fake_build)
    return fake


@pytest.fixture
def credential() -> Credential:
    """A credential valid for the next hour."""
    return Credential(
        access_token="ya29.test-access",
        refresh_token="1//test-refresh",
        expiry_ms=now_ms() + 3600000,
        scopes=("https://www.googleapis.com/auth/gmail.modify",),
    )


@pytest.fixture
def manager() -> CredentialManager:
    return CredentialManager(CLIENT_CONFIG)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point config lookups at a temp dir and clear client env overrides."""
    config_dir = tmp_path / "config"
    monkeypatch.setenv("GMDASH_CONFIG_DIR", str(config_dir))
    monkeypatch.delenv("GMDASH_CONFIG_FILE", raising=False)
    for name in ("GMDASH_CLIENT_ID", "GMDASH_CLIENT_SECRET", "GMDASH_REDIRECT_URI"):
        monkeypatch.delenv(name, raising=False)
    return config_dir
