"""gmdash SDK - Gmail integration core.

Provides the OAuth credential lifecycle and the Gmail message transforms
used by the dashboard. It can be used by:
- The gmdash CLI
- A web layer holding one credential per user session

Example usage:
    from gmdash.sdk import auth, session, mail

    guard = session.SessionGuard(auth.CredentialManager.from_config(),
                                 session.FileSessionStore())
    credential = guard.credential_for("default")
    for email in mail.list_messages(credential):
        print(email.subject)
"""

from . import config
from . import auth
from . import session
from . import mail

__all__ = ["config", "auth", "session", "mail"]
