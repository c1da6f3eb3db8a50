"""In-process message bus with per-tab delivery and same-page channels.

Messages are dicts with a ``msg`` field naming the message type.
Listeners are registered either for the runtime scope (``tab_id=None``)
or for one tab; ``send`` delivers to one scope and returns the first
non-None response.

Same-page messaging goes through the relay installed by ``serve()``:
a ``SelfChannel`` wraps ``msg`` as ``_&_<msg>_&_`` and tags the message
with its page ID; the relay unwraps it and sends it back to the sender's
tab, where only listeners of the same page accept it.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

PAGE_ID_MSG = "__PAGE_ID__"
PAGE_ID_FIELD = "__pageId__"
# Tabless pages are assumed to be the popup
POPUP_PAGE_ID = "popup"

_SELF_MSG = re.compile(r"^_&_(.+)_&_$")

Message = dict[str, Any]


@dataclass(frozen=True)
class MessageSender:
    """Where a message came from."""

    tab_id: int | None = None


MessageListener = Callable[[Message, MessageSender], Any]


@dataclass(frozen=True)
class _Registration:
    callback: MessageListener
    msg: str
    tab_id: int | None
    handler: MessageListener


class MessageBus:
    """Route messages between listeners in one process."""

    def __init__(self) -> None:
        self._registrations: list[_Registration] = []
        self._serving = False

    def listen(
        self,
        callback: MessageListener,
        msg: str | None = None,
        *,
        tab_id: int | None = None,
    ) -> None:
        """
        Register a listener.

        Args:
            callback: Called with (message, sender); may be a coroutine function.
                Its return value is the response.
            msg: Only receive messages with this ``msg`` (all if None)
            tab_id: Scope to listen in (runtime scope if None)
        """
        msg = msg or ""
        if not callable(callback):
            raise TypeError("Callback should be a function.")
        if any(r.callback is callback and r.msg == msg for r in self._registrations):
            return

        if msg:

            def handler(message: Message, sender: MessageSender) -> Any:
                if message.get("msg") == msg:
                    return callback(message, sender)
                return None

        else:
            handler = callback

        self._registrations.append(_Registration(callback, msg, tab_id, handler))

    def off(self, callback: MessageListener, msg: str | None = None) -> None:
        """Remove a listener, for one msg or for all of them."""
        self._registrations = [
            r
            for r in self._registrations
            if not (r.callback is callback and (msg is None or r.msg == msg))
        ]

    async def send(
        self,
        message: Message,
        *,
        tab_id: int | None = None,
        sender: MessageSender | None = None,
    ) -> Any:
        """
        Deliver a message to every listener in a scope.

        Args:
            message: JSON-like dict with a ``msg`` field
            tab_id: Target tab (runtime scope if None)
            sender: Reported to listeners as the origin

        Returns:
            The first non-None listener response, or None
        """
        sender = sender or MessageSender()
        response: Any = None
        for registration in list(self._registrations):
            if registration.tab_id != tab_id:
                continue
            try:
                result = registration.handler(message, sender)
                if asyncio.iscoroutine(result):
                    result = await result
            except Exception:
                logger.warning("Message listener failed for %r", message.get("msg"), exc_info=True)
                continue
            if response is None and result is not None:
                response = result
        return response

    def serve(self) -> None:
        """Install the relay that answers page ID requests and routes self messages."""
        if self._serving:
            return
        self._serving = True
        self.listen(self._relay)

    async def _relay(self, message: Message, sender: MessageSender) -> Any:
        msg = message.get("msg")
        if not isinstance(msg, str):
            return None

        if msg == PAGE_ID_MSG:
            return get_page_id(sender)

        match = _SELF_MSG.match(msg)
        if match:
            logger.debug("SELF relay %s from %s", msg, get_page_id(sender))
            relayed = {**message, "msg": match.group(1)}
            return await self.send(relayed, tab_id=sender.tab_id, sender=sender)
        return None

    async def open_self_channel(self, tab_id: int | None = None) -> SelfChannel:
        """Open a same-page channel for a tab (or the popup when tab_id is None)."""
        page_id = await self.send({"msg": PAGE_ID_MSG}, sender=MessageSender(tab_id))
        return SelfChannel(self, tab_id, page_id)


class SelfChannel:
    """Messages that only reach listeners on the same page."""

    def __init__(self, bus: MessageBus, tab_id: int | None, page_id: Any) -> None:
        self._bus = bus
        self._tab_id = tab_id
        self._page_id = page_id
        self._handlers: dict[MessageListener, list[MessageListener]] = {}

    @property
    def page_id(self) -> Any:
        return self._page_id

    async def send(self, message: Message) -> Any:
        """Send through the relay back to this page."""
        wrapped = {**message, "msg": f"_&_{message.get('msg')}_&_", PAGE_ID_FIELD: self._page_id}
        logger.debug("SELF send %s on %s", wrapped["msg"], self._page_id)
        return await self._bus.send(wrapped, sender=MessageSender(self._tab_id))

    def listen(self, callback: MessageListener, msg: str | None = None) -> None:
        """Listen for same-page messages, optionally of one type."""

        def handler(message: Message, sender: MessageSender) -> Any:
            if message.get(PAGE_ID_FIELD) != self._page_id:
                return None
            # Still wrapped: on its way to the relay
            if _SELF_MSG.match(str(message.get("msg"))):
                return None
            if msg and message.get("msg") != msg:
                return None
            return callback(message, sender)

        self._bus.listen(handler, tab_id=self._tab_id)
        self._handlers.setdefault(callback, []).append(handler)

    def off(self, callback: MessageListener) -> None:
        for handler in self._handlers.pop(callback, []):
            self._bus.off(handler)


def get_page_id(sender: MessageSender) -> Any:
    """Page ID of a sender: its tab ID, or the popup when it has no tab."""
    if sender.tab_id is not None:
        return sender.tab_id
    return POPUP_PAGE_ID
