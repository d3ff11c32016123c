"""Session-scoped credential storage and the refresh guard.

A session store is an opaque key-value holder of credential blobs. The
``SessionGuard`` is what a protected request calls before touching Gmail: it
loads the session's credential, refreshes it if needed, writes the new value
back and drops the session when the refresh token is no longer usable.
"""

import os
import re
import json
import logging
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol

from .auth import Credential, CredentialManager
from .config import get_sessions_dir
from .exceptions import NotAuthenticatedError, RefreshError, ValidationError

logger = logging.getLogger(__name__)

# Valid session name pattern: alphanumeric, hyphen, underscore, 1-64 chars
SESSION_ID_PATTERN = re.compile(r'^[a-zA-Z0-9][a-zA-Z0-9_-]{0,63}$')


class SessionStore(Protocol):
    """Contract for anything that can hold a credential per session."""

    def get(self, session_id: str) -> Optional[Credential]: ...

    def put(self, session_id: str, credential: Credential) -> None: ...

    def delete(self, session_id: str) -> None: ...


class MemorySessionStore:
    """Process-local store, mainly for tests and embedding."""

    def __init__(self):
        self._data: Dict[str, Dict] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[Credential]:
        with self._lock:
            blob = self._data.get(session_id)
        return Credential.from_dict(blob) if blob else None

    def put(self, session_id: str, credential: Credential) -> None:
        with self._lock:
            self._data[session_id] = credential.to_dict()

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._data.pop(session_id, None)


class FileSessionStore:
    """One JSON credential blob per session in a directory.

    Defaults to the ``sessions`` directory next to the config file.
    """

    def __init__(self, directory: Optional[Path] = None):
        self.directory = Path(directory) if directory else get_sessions_dir()

    def _path(self, session_id: str) -> Path:
        if not SESSION_ID_PATTERN.match(session_id or ""):
            raise ValidationError(
                f"Invalid session name: '{session_id}'",
                operation="resolve session",
                target=session_id,
            )
        return self.directory / f"{session_id}.json"

    def get(self, session_id: str) -> Optional[Credential]:
        path = self._path(session_id)
        if not path.exists():
            logger.debug(f"No stored credential for session '{session_id}'")
            return None
        try:
            with open(path) as f:
                return Credential.from_dict(json.load(f))
        except (json.JSONDecodeError, KeyError) as e:
            logger.warning(f"Ignoring unreadable session file {path}: {e}")
            return None

    def put(self, session_id: str, credential: Credential) -> None:
        path = self._path(session_id)
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w") as f:
            json.dump(credential.to_dict(), f, indent=2)
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, path)
        logger.debug(f"Stored credential for session '{session_id}'")

    def delete(self, session_id: str) -> None:
        path = self._path(session_id)
        if path.exists():
            path.unlink()
            logger.debug(f"Deleted session '{session_id}'")


class SessionGuard:
    """Hands out valid credentials for sessions, one refresh at a time.

    Refresh is serialized per session id: a request that waited on another
    request's refresh re-reads the store and reuses the refreshed value.
    """

    def __init__(self, manager: CredentialManager, store: SessionStore):
        self.manager = manager
        self.store = store
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(session_id, threading.Lock())

    def login(self, session_id: str, code: str) -> Credential:
        """Exchange an authorization code and store the result."""
        credential = self.manager.exchange_code(code)
        self.store.put(session_id, credential)
        return credential

    def _drop_lock(self, session_id: str) -> None:
        with self._locks_guard:
            self._locks.pop(session_id, None)

    def logout(self, session_id: str) -> None:
        self.store.delete(session_id)
        self._drop_lock(session_id)
        logger.info(f"Session '{session_id}' ended")

    def credential_for(self, session_id: str) -> Credential:
        """
        Return a credential for the session that is valid right now.

        Raises:
            NotAuthenticatedError: If the session holds no credential.
            RefreshError: If the refresh failed; the session is deleted.
        """
        with self._lock_for(session_id):
            credential = self.store.get(session_id)
            if credential is None:
                logger.info(f"Session '{session_id}' not authenticated")
                self._drop_lock(session_id)
                raise NotAuthenticatedError(session_id)

            try:
                valid = self.manager.ensure_valid(credential)
            except RefreshError as e:
                e.target = session_id
                logger.error(f"Invalidating session '{session_id}': {e}")
                self.store.delete(session_id)
                self._drop_lock(session_id)
                raise

            if valid is not credential:
                self.store.put(session_id, valid)
            return valid
