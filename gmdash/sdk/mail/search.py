"""Gmail message listing."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from ..auth import Credential
from ..timing import time_api_call
from .models import MessageFilter, NormalizedEmail
from .read import get_message
from .service import USER_ID, get_gmail_service, provider_call

logger = logging.getLogger(__name__)


def _list_message_ids(credential: Credential, message_filter: MessageFilter) -> List[str]:
    service = get_gmail_service(credential)
    list_kwargs = {"userId": USER_ID, "maxResults": message_filter.max_results}
    if message_filter.label_ids:
        list_kwargs["labelIds"] = sorted(message_filter.label_ids)
    if message_filter.query:
        list_kwargs["q"] = message_filter.query

    with provider_call("list messages"):
        results = service.users().messages().list(**list_kwargs).execute()

    # Never return more ids than requested
    messages = results.get("messages", [])[:message_filter.max_results]
    return [message["id"] for message in messages]


@time_api_call
def list_messages(
    credential: Credential,
    message_filter: Optional[MessageFilter] = None,
) -> List[NormalizedEmail]:
    """
    List messages matching a filter, fully normalized.

    Message ids are listed first; each message is then fetched on its own
    worker thread. Results keep the listing order no matter which fetch
    finishes first. If any fetch fails the whole call fails and no partial
    list is returned. Every fetch has finished by the time the call returns
    or raises.

    There is no timeout beyond the HTTP client's own defaults.

    Args:
        credential: A valid credential
        message_filter: max_results, label_ids and query (defaults apply)

    Returns:
        List of NormalizedEmail in listing order
    """
    message_filter = message_filter or MessageFilter()
    logger.debug(f"Listing messages with filter: {message_filter}")

    message_ids = _list_message_ids(credential, message_filter)
    if not message_ids:
        logger.debug("No messages found matching the criteria.")
        return []

    logger.debug(f"Fetching {len(message_ids)} messages")
    # Leaving the block joins every worker, also when a fetch failed
    with ThreadPoolExecutor(max_workers=len(message_ids), thread_name_prefix="gmdash-fetch") as pool:
        futures = [pool.submit(get_message, credential, message_id) for message_id in message_ids]
        emails = [future.result() for future in futures]

    logger.debug(f"Successfully parsed {len(emails)} messages")
    return emails
