"""Gmail service factory and provider error mapping for gmdash SDK."""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Type

import google.auth.exceptions
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..auth import Credential
from ..exceptions import (
    DuplicateLabelError,
    GmdashError,
    MessageNotFoundError,
    ProviderError,
)
from ..timing import time_api_call

logger = logging.getLogger(__name__)

USER_ID = "me"


def get_gmail_service(credential: Credential) -> Any:
    """
    Build a short-lived Gmail API client scoped to one credential.

    A new client is built per operation (and per worker thread), so no
    HTTP connection state is shared between calls.

    Args:
        credential: A credential already validated by the session guard

    Returns:
        Gmail API service object
    """
    logger.debug("Building Gmail service for request")
    return build(
        "gmail", "v1",
        credentials=credential.to_google_credentials(),
        cache_discovery=False,
    )


def _error_detail(error: HttpError) -> str:
    reason = getattr(error, "reason", None)
    return reason or str(error)


@contextmanager
def provider_call(
    operation: str,
    target: Optional[str] = None,
    error_class: Type[GmdashError] = ProviderError,
) -> Iterator[None]:
    """
    Translate Gmail failures raised inside the block into gmdash errors.

    For provider errors, 404 becomes MessageNotFoundError and 409
    DuplicateLabelError; any other HTTP or transport failure becomes
    ``error_class``. Every failure is logged with its operation and target
    before being re-raised.
    """
    described = f"{operation} {target}" if target else operation
    try:
        yield
    except HttpError as e:
        status = e.resp.status if e.resp is not None else None
        detail = _error_detail(e)
        logger.error(f"Error during {described}: {detail}")
        cls = error_class
        if issubclass(error_class, ProviderError):
            if status == 404:
                cls = MessageNotFoundError
            elif status == 409:
                cls = DuplicateLabelError
        raise cls(
            f"Failed to {described}: {detail}",
            operation=operation,
            target=target,
            status=status,
        ) from e
    except (google.auth.exceptions.TransportError, OSError) as e:
        logger.error(f"Error during {described}: {e}")
        raise error_class(
            f"Failed to {described}: {e}",
            operation=operation,
            target=target,
        ) from e


@time_api_call
def get_profile_email(credential: Credential) -> str:
    """Return the email address of the authenticated user."""
    service = get_gmail_service(credential)
    with provider_call("get profile"):
        profile = service.users().getProfile(userId=USER_ID).execute()
    return profile.get("emailAddress", "")
