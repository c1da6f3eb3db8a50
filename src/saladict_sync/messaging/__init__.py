"""In-process messaging between the sync service and its callers."""

from saladict_sync.messaging.bus import (
    PAGE_ID_MSG,
    Message,
    MessageBus,
    MessageListener,
    MessageSender,
    SelfChannel,
    get_page_id,
)

__all__ = [
    "PAGE_ID_MSG",
    "Message",
    "MessageBus",
    "MessageListener",
    "MessageSender",
    "SelfChannel",
    "get_page_id",
]
