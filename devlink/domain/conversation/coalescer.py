"""
Streaming message coalescer

Turns the append-only stream of partial/final conversation updates into a
stable list: partial updates rewrite their open entry in place, the final
update closes it, and only visible categories are published.
"""
from typing import Callable, List, Optional

from ...core.events import EventStream, Subscription
from ...core.exceptions import DecodeError
from ...core.logging import get_logger
from ..channel.protocol import ConversationPayload, MessageRole, ProtocolMessage
from .models import AskType, ConversationMessage, MessageKind, SayType

logger = get_logger(__name__)

VisibilityPredicate = Callable[[ConversationMessage], bool]


def default_visibility(message: ConversationMessage) -> bool:
    return message.is_visible


def resolve_kind(payload: ConversationPayload) -> MessageKind:
    """
    Work out the message kind.

    Order: payload `type` ("say:text"), then metadata originalType with
    sayType/askType, then the role (user -> ask:followup, else say:text).
    """
    if payload.kind:
        kind = MessageKind.parse(payload.kind)
        if kind is not None:
            return kind

    try:
        if payload.original_type == "ask" and payload.ask_type:
            return MessageKind.ask(payload.ask_type)
        if payload.original_type == "say" and payload.say_type:
            return MessageKind.say(payload.say_type)
    except ValueError:
        pass

    if payload.role == MessageRole.USER.value:
        return MessageKind.ask(AskType.FOLLOWUP)
    return MessageKind.say(SayType.TEXT)


def to_conversation_message(message: ProtocolMessage) -> ConversationMessage:
    """
    Map an AIConversation envelope to a conversation entry.

    Raises:
        DecodeError: If the envelope cannot be mapped
    """
    payload = ConversationPayload.from_message(message)
    return ConversationMessage(
        id=message.id,
        kind=resolve_kind(payload),
        text=payload.text,
        partial=payload.partial,
        logical_message_id=payload.message_id,
        timestamp=message.timestamp,
    )


class MessageCoalescer:
    """Keeps all received entries and publishes the visible subset"""

    def __init__(self, visibility: VisibilityPredicate = default_visibility):
        self._visibility = visibility
        self._all: List[ConversationMessage] = []
        self._visible: List[ConversationMessage] = []
        self.visible_updates: EventStream = EventStream(latest_only=True)
        self.updates: EventStream = EventStream()

    @property
    def all_messages(self) -> List[ConversationMessage]:
        return list(self._all)

    @property
    def visible_messages(self) -> List[ConversationMessage]:
        return list(self._visible)

    def subscribe(self) -> Subscription:
        """Stream of visible-list snapshots; a slow reader sees only the newest"""
        return self.visible_updates.subscribe()

    # --------------------
    # Input
    # --------------------
    def process(self, message: ProtocolMessage) -> bool:
        """
        Feed one inbound envelope.

        Envelopes that cannot be mapped are dropped with a warning.

        Returns:
            True if the entry list changed
        """
        try:
            entry = to_conversation_message(message)
        except DecodeError as e:
            logger.warning(f"Dropping conversation message {message.id}: {e}")
            return False
        return self.add(entry)

    def add(self, message: ConversationMessage) -> bool:
        """
        Merge one entry into the list.

        Returns:
            True if the entry list changed
        """
        key = message.key
        index = self._last_open_partial(key)

        if message.is_partial:
            if index is not None:
                logger.debug(f"Streaming update to {key}")
                self._all[index].text = message.text
                self._all[index].partial = message.partial
            else:
                logger.debug(f"New partial message {key}")
                self._all.append(message)
        else:
            if index is not None:
                logger.debug(f"Completing partial message {key}")
                self._all[index].text = message.text
                self._all[index].partial = False
            elif self._is_redelivery(message):
                logger.debug(f"Ignoring repeated final message {key}")
                return False
            else:
                logger.debug(f"New complete message {key}")
                self._all.append(message)

        self._refresh_visible()
        self.updates.publish(message)
        return True

    def add_user_message(self, text: str) -> ConversationMessage:
        """Append a locally-authored question"""
        message = ConversationMessage(kind=MessageKind.ask(AskType.FOLLOWUP), text=text)
        self.add(message)
        return message

    def clear(self) -> None:
        self._all.clear()
        self._refresh_visible()
        logger.info("Cleared all messages")

    # --------------------
    # Helpers
    # --------------------
    def _last_open_partial(self, key: str) -> Optional[int]:
        """Index of the most recent still-partial entry with this logical id"""
        for index in range(len(self._all) - 1, -1, -1):
            entry = self._all[index]
            if entry.is_partial and entry.key == key:
                return index
        return None

    def _is_redelivery(self, message: ConversationMessage) -> bool:
        """A final update identical to the latest final entry with its id"""
        for entry in reversed(self._all):
            if entry.key == message.key:
                return (
                    not entry.is_partial
                    and entry.text == message.text
                    and entry.kind == message.kind
                )
        return False

    def _refresh_visible(self) -> None:
        self._visible = [entry for entry in self._all if self._visibility(entry)]
        self.visible_updates.publish(self.visible_messages)
        logger.debug(f"Visible messages: {len(self._visible)}")
