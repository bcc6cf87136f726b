"""
Conversation aggregation over the flat messages collection.

A conversation is every message exchanged between the current user and one
counterpart about one listing, whoever sent it. Conversations are never
stored; they are rebuilt from the messages each time the inbox loads.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from database import ACCOUNTS, LISTINGS, MESSAGES, RecordStore, new_id
from errors import NotFound, ValidationFailed
from schemas import MAX_MESSAGE_LENGTH, Account, Conversation, Message, utcnow

logger = logging.getLogger(__name__)


def build_conversations(received: Sequence[Message], sent: Sequence[Message]) -> List[Conversation]:
    """
    Group the current user's messages into conversations.

    Received messages are keyed by (sender, listing) and sent messages by
    (receiver, listing), so the key always names the other party. Received
    messages are folded in first; only they contribute to the unread count.
    The result is ordered most recent first, ties in insertion order.
    """
    by_key: Dict[Tuple[str, str], Conversation] = {}

    for msg in received:
        key = (msg.sender_id, msg.listing_id)
        existing = by_key.get(key)
        if existing:
            existing.last_message_time = max(existing.last_message_time, msg.timestamp)
            existing.unread_count += 0 if msg.read else 1
        else:
            by_key[key] = Conversation(
                counterpart_id=msg.sender_id,
                counterpart_name=msg.sender_name,
                listing_id=msg.listing_id,
                listing_title=msg.listing_title,
                last_message_time=msg.timestamp,
                unread_count=0 if msg.read else 1,
            )

    for msg in sent:
        key = (msg.receiver_id, msg.listing_id)
        existing = by_key.get(key)
        if existing:
            if msg.timestamp > existing.last_message_time:
                existing.last_message_time = msg.timestamp
        else:
            by_key[key] = Conversation(
                counterpart_id=msg.receiver_id,
                counterpart_name=msg.receiver_name,
                listing_id=msg.listing_id,
                listing_title=msg.listing_title,
                last_message_time=msg.timestamp,
                unread_count=0,
            )

    return sorted(by_key.values(), key=lambda c: c.last_message_time, reverse=True)


def in_conversation(msg: Message, current_user_id: str, conversation: Conversation) -> bool:
    if msg.listing_id != conversation.listing_id:
        return False
    return ((msg.sender_id == current_user_id and msg.receiver_id == conversation.counterpart_id)
            or (msg.receiver_id == current_user_id and msg.sender_id == conversation.counterpart_id))


def select_conversation(store: RecordStore, conversation: Conversation, current_user_id: str) -> List[Message]:
    """
    Return the conversation's messages oldest first and mark the ones
    addressed to the current user as read.

    Storage is only written when a flag actually flips, so selecting an
    already-read conversation again changes nothing.
    """
    messages = store.get_documents(MESSAGES)
    changed = False
    for msg in messages:
        if in_conversation(msg, current_user_id, conversation) and msg.receiver_id == current_user_id and not msg.read:
            msg.read = True
            changed = True
    if changed:
        store.replace_documents(MESSAGES, messages)

    conversation.unread_count = 0
    thread = [m for m in messages if in_conversation(m, current_user_id, conversation)]
    return sorted(thread, key=lambda m: m.timestamp)


def send_message(store: RecordStore, sender: Account, receiver_id: str, listing_id: str, content: str,
                 listing_title: Optional[str] = None, now: Optional[datetime] = None) -> Message:
    """
    Persist a new unread message from ``sender`` to ``receiver_id``.

    ``listing_title`` is used when the listing has since been deleted and the
    reply comes from an existing conversation.
    """
    if not content or not content.strip():
        raise ValidationFailed("Please enter a message to send.")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationFailed(f"Messages are limited to {MAX_MESSAGE_LENGTH} characters.")
    if sender.id == receiver_id:
        raise ValidationFailed("You cannot send a message to yourself.")

    receiver = store.find_document(ACCOUNTS, receiver_id)
    if receiver is None:
        raise NotFound("Recipient not found")
    listing = store.find_document(LISTINGS, listing_id)
    if listing is not None:
        listing_title = listing.title
    elif listing_title is None:
        raise NotFound("Listing not found")

    message = Message(
        id=new_id(),
        sender_id=sender.id,
        sender_name=sender.name,
        receiver_id=receiver.id,
        receiver_name=receiver.name,
        listing_id=listing_id,
        listing_title=listing_title,
        content=content,
        timestamp=now or utcnow(),
        read=False,
    )
    store.create_document(MESSAGES, message)
    logger.info("Message %s sent from %s to %s about %s", message.id, sender.id, receiver.id, listing_id)
    return message


def contact_seller(store: RecordStore, sender: Account, listing_id: str, content: str,
                   now: Optional[datetime] = None) -> Message:
    listing = store.find_document(LISTINGS, listing_id)
    if listing is None:
        raise NotFound("Listing not found")
    return send_message(store, sender, listing.owner_id, listing_id, content, now=now)


def unread_messages(store: RecordStore, account_id: str) -> List[Message]:
    return [m for m in store.get_documents(MESSAGES, {"receiver_id": account_id}) if not m.read]


class Inbox:
    """The messages view for one account: conversation list plus open thread."""

    def __init__(self, store: RecordStore, account: Account):
        self.store = store
        self.account = account
        self.received: List[Message] = []
        self.sent: List[Message] = []
        self.conversations: List[Conversation] = []
        self.selected: Optional[Conversation] = None
        self.thread: List[Message] = []

    def load(self) -> List[Conversation]:
        messages = self.store.get_documents(MESSAGES)
        self.received = [m for m in messages if m.receiver_id == self.account.id]
        self.sent = [m for m in messages if m.sender_id == self.account.id]
        self.conversations = build_conversations(self.received, self.sent)
        return self.conversations

    refresh = load

    @property
    def unread_total(self) -> int:
        return sum(c.unread_count for c in self.conversations)

    def find(self, counterpart_id: str, listing_id: str) -> Optional[Conversation]:
        for conversation in self.conversations:
            if conversation.key == (counterpart_id, listing_id):
                return conversation
        return None

    def select(self, conversation: Conversation) -> List[Message]:
        self.selected = self.find(*conversation.key) or conversation
        self.thread = select_conversation(self.store, self.selected, self.account.id)
        return self.thread

    def reply(self, content: str, now: Optional[datetime] = None) -> Message:
        if self.selected is None:
            raise ValidationFailed("Select a conversation first.")
        message = send_message(
            self.store,
            self.account,
            self.selected.counterpart_id,
            self.selected.listing_id,
            content,
            listing_title=self.selected.listing_title,
            now=now,
        )
        self.thread.append(message)
        self.sent.append(message)
        return message
