import pytest

from conversations import Inbox, build_conversations, contact_seller, select_conversation, send_message
from database import LISTINGS, MESSAGES
from errors import NotFound, ValidationFailed
from tests.factories import at, make_account, make_listing, make_message, store_messages


@pytest.fixture
def people(store):
    return (
        make_account(store, "Asha"),
        make_account(store, "Bilal"),
        make_account(store, "Chen"),
    )


def split(messages, user):
    received = [m for m in messages if m.receiver_id == user.id]
    sent = [m for m in messages if m.sender_id == user.id]
    return received, sent


def test_two_way_exchange_collapses_into_one_conversation(people):
    a, b, _ = people
    messages = [make_message(a, b, "L1", 1), make_message(b, a, "L1", 2)]

    result = build_conversations(*split(messages, a))

    assert len(result) == 1
    conversation = result[0]
    assert conversation.counterpart_id == b.id
    assert conversation.counterpart_name == "Bilal"
    assert conversation.listing_id == "L1"
    assert conversation.last_message_time == at(2)
    assert conversation.unread_count == 1


def test_every_message_lands_in_exactly_one_bucket(people):
    a, b, c = people
    messages = [
        make_message(a, b, "L1", 1),
        make_message(b, a, "L1", 5, read=True),
        make_message(c, a, "L1", 3),
        make_message(a, c, "L2", 4),
        make_message(c, a, "L2", 2),
        make_message(b, a, "L2", 6),
    ]
    received, sent = split(messages, a)

    result = build_conversations(received, sent)
    keys = [c.key for c in result]

    assert len(keys) == len(set(keys))
    for msg in received:
        assert keys.count((msg.sender_id, msg.listing_id)) == 1
    for msg in sent:
        assert keys.count((msg.receiver_id, msg.listing_id)) == 1
    assert set(keys) == {(b.id, "L1"), (c.id, "L1"), (c.id, "L2"), (b.id, "L2")}


def test_conversations_are_sorted_most_recent_first(people):
    a, b, c = people
    messages = [
        make_message(b, a, "L1", 10),
        make_message(c, a, "L2", 30),
        make_message(a, b, "L3", 20),
    ]

    result = build_conversations(*split(messages, a))
    times = [c.last_message_time for c in result]

    assert times == sorted(times, reverse=True)
    assert list(reversed(times)) == sorted(times)
    assert [c.listing_id for c in result] == ["L2", "L3", "L1"]


def test_ties_keep_insertion_order(people):
    a, b, c = people
    messages = [make_message(b, a, "L1", 5), make_message(c, a, "L2", 5)]

    result = build_conversations(*split(messages, a))

    assert [c.counterpart_id for c in result] == [b.id, c.id]


def test_sent_messages_only_move_time_forward_and_never_count_unread(people):
    a, b, _ = people
    received = [make_message(b, a, "L1", 10)]
    sent = [make_message(a, b, "L1", 4), make_message(a, b, "L1", 12)]

    [conversation] = build_conversations(received, sent)

    assert conversation.last_message_time == at(12)
    assert conversation.unread_count == 1


def test_received_messages_take_latest_time_and_count_unread(people):
    a, b, _ = people
    received = [
        make_message(b, a, "L1", 8),
        make_message(b, a, "L1", 3),
        make_message(b, a, "L1", 5, read=True),
    ]

    [conversation] = build_conversations(received, [])

    assert conversation.last_message_time == at(8)
    assert conversation.unread_count == 2


def test_sent_only_conversation_has_no_unread(people):
    a, b, _ = people

    [conversation] = build_conversations([], [make_message(a, b, "L1", 1)])

    assert conversation.counterpart_id == b.id
    assert conversation.counterpart_name == "Bilal"
    assert conversation.unread_count == 0


def test_read_conversations_are_still_listed(people):
    a, b, _ = people

    result = build_conversations([make_message(b, a, "L1", 1, read=True)], [])

    assert len(result) == 1
    assert result[0].unread_count == 0


def test_select_returns_thread_oldest_first_and_marks_read(store, people):
    a, b, c = people
    store_messages(store, [
        make_message(b, a, "L1", 3, content="third"),
        make_message(a, b, "L1", 1, content="first"),
        make_message(b, a, "L1", 2, content="second"),
        make_message(c, a, "L1", 4, content="other sender"),
        make_message(b, a, "L2", 5, content="other listing"),
    ])
    inbox = Inbox(store, a)
    inbox.load()
    conversation = inbox.find(b.id, "L1")
    assert conversation.unread_count == 2

    thread = select_conversation(store, conversation, a.id)

    assert [m.content for m in thread] == ["first", "second", "third"]
    assert conversation.unread_count == 0
    stored = {m.content: m for m in store.get_documents(MESSAGES)}
    assert stored["second"].read and stored["third"].read
    assert not stored["first"].read
    assert not stored["other sender"].read
    assert not stored["other listing"].read


def test_select_is_idempotent(store, people):
    a, b, _ = people
    store_messages(store, [make_message(b, a, "L1", 1), make_message(a, b, "L1", 2)])
    [conversation] = Inbox(store, a).load()

    first = select_conversation(store, conversation, a.id)
    snapshot = store.backend.raw(MESSAGES)
    second = select_conversation(store, conversation, a.id)

    assert [m.id for m in first] == [m.id for m in second]
    assert store.backend.raw(MESSAGES) == snapshot
    assert conversation.unread_count == 0


@pytest.mark.parametrize("content", ["", "   ", "\n\t"])
def test_blank_message_is_rejected_without_touching_storage(store, people, content):
    a, b, _ = people
    listing = make_listing(store, b)
    store_messages(store, [make_message(a, b, listing.id, 1)])
    before = store.backend.raw(MESSAGES)

    with pytest.raises(ValidationFailed):
        send_message(store, a, b.id, listing.id, content)

    assert store.backend.raw(MESSAGES) == before


def test_cannot_message_yourself(store, people):
    a, _, _ = people
    listing = make_listing(store, a)

    with pytest.raises(ValidationFailed):
        send_message(store, a, a.id, listing.id, "hi me")
    assert store.get_documents(MESSAGES) == []


def test_unknown_listing_or_recipient_is_not_found(store, people):
    a, b, _ = people
    listing = make_listing(store, b)

    with pytest.raises(NotFound):
        send_message(store, a, b.id, "missing", "hello")
    with pytest.raises(NotFound):
        send_message(store, a, "nobody", listing.id, "hello")


def test_new_conversation_shows_no_unread_for_sender_and_one_for_receiver(store, people):
    a, b, _ = people
    listing = make_listing(store, b, title="Drafter")

    message = contact_seller(store, a, listing.id, "Is this still available?", now=at(1))

    assert message.receiver_id == b.id
    assert message.listing_title == "Drafter"
    assert message.read is False
    [mine] = Inbox(store, a).load()
    assert (mine.counterpart_id, mine.unread_count) == (b.id, 0)
    [theirs] = Inbox(store, b).load()
    assert (theirs.counterpart_id, theirs.unread_count) == (a.id, 1)


def test_inbox_reply_appends_to_displayed_lists(store, people):
    a, b, _ = people
    listing = make_listing(store, a)
    store_messages(store, [make_message(b, a, listing.id, 1)])
    inbox = Inbox(store, a)
    [conversation] = inbox.load()
    inbox.select(conversation)

    message = inbox.reply("Yes, still available", now=at(2))

    assert inbox.thread[-1] == message
    assert inbox.sent[-1] == message
    assert len(store.get_documents(MESSAGES)) == 2
    inbox.refresh()
    assert inbox.conversations[0].last_message_time == at(2)
    assert inbox.unread_total == 0


def test_reply_requires_a_selected_conversation(store, people):
    a, _, _ = people
    with pytest.raises(ValidationFailed):
        Inbox(store, a).reply("hello")


def test_reply_survives_listing_deletion(store, people):
    a, b, _ = people
    listing = make_listing(store, a, title="Lab Coat")
    store_messages(store, [make_message(b, a, listing.id, 1, listing_title="Lab Coat")])
    store.delete_document(LISTINGS, listing.id)
    inbox = Inbox(store, a)
    inbox.select(inbox.load()[0])

    message = inbox.reply("Sorry, it's gone")

    assert message.listing_title == "Lab Coat"


def test_over_long_message_is_rejected_without_touching_storage(store, people):
    a, b, _ = people
    listing = make_listing(store, b)

    with pytest.raises(ValidationFailed, match="5000"):
        send_message(store, a, b.id, listing.id, "x" * 5001)

    assert store.get_documents(MESSAGES) == []
    assert send_message(store, a, b.id, listing.id, "x" * 5000).content == "x" * 5000
