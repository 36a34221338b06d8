import re

import pytest
from google.api_core.exceptions import ServiceUnavailable

from a_rtchat import firebase_sync
from a_rtchat.exceptions import ChatNotFound, InvalidChatOperation, NotGroupAdmin
from a_rtchat.firebase_sync import (
    add_group_admin,
    add_participant_to_chat,
    create_chat,
    create_group,
    delete_chat,
    delete_chat_and_messages,
    delete_group,
    get_all_groups,
    get_chat,
    get_chats,
    get_group,
    get_groups_for_user,
    get_or_create_direct_chat,
    is_group_admin,
    remove_group_admin,
    remove_participant_from_chat,
    send_message,
    toggle_pin_chat,
    update_chat,
    update_group_name,
)
from a_rtchat.models import DirectChat, GroupChat, direct_chat_id


def _assert_admins_within_participants(chat_id):
    chat = get_chat(chat_id)
    assert set(chat.admins) <= set(chat.participants)


# ---------- direct chats ----------

def test_direct_chat_is_created_once_per_pair(users):
    first = create_chat("direct", ["alice", "bob"], "alice")
    second = create_chat("direct", ["bob", "alice"], "bob")
    third = get_or_create_direct_chat("alice", "bob")

    assert first == second == third
    chat = get_chat(first)
    assert isinstance(chat, DirectChat)
    assert chat.participants == ["alice", "bob"]
    assert chat.other_participant("alice") == "bob"


def test_direct_chat_lookup_finds_chats_with_random_ids(store, users):
    store.collection("chats").document("legacy123").set({
        "type": "direct",
        "participants": ["bob", "alice"],
        "createdBy": "bob",
        "createdAt": "2024-06-01T00:00:00.000Z",
    })
    assert get_or_create_direct_chat("alice", "bob") == "legacy123"
    assert len(store.paths("chats/")) == 1


def test_concurrent_direct_chat_creation_converges(store, users, monkeypatch):
    # the other writer committed between our lookup and our create()
    monkeypatch.setattr(firebase_sync, "find_direct_chat", lambda uid, other: None)
    winner = get_or_create_direct_chat("bob", "alice")
    before = store.data(f"chats/{winner}")

    assert get_or_create_direct_chat("alice", "bob") == winner
    assert store.data(f"chats/{winner}") == before
    assert before["pairKey"] == "alice#bob"


def test_direct_chat_ids_are_url_safe(users):
    chat_id = get_or_create_direct_chat("alice", "bob")
    assert chat_id == direct_chat_id("bob", "alice")
    assert re.fullmatch(r"direct_[0-9a-f]+", chat_id)


@pytest.mark.parametrize("participants, creator", [
    (["alice"], "alice"),
    (["alice", "bob", "carol"], "alice"),
    (["bob", "carol"], "alice"),
    (["alice", "alice"], "alice"),
])
def test_direct_chat_needs_exactly_two_users(users, participants, creator):
    with pytest.raises(InvalidChatOperation):
        create_chat("direct", participants, creator)


def test_unknown_chat_type_is_rejected(users):
    with pytest.raises(InvalidChatOperation):
        create_chat("channel", ["alice", "bob"], "alice")


# ---------- groups ----------

def test_group_creator_is_sole_admin_and_participant(users):
    chat_id = create_chat("group", ["bob", "carol"], "alice", name="Tea party")
    chat = get_chat(chat_id)

    assert isinstance(chat, GroupChat)
    assert chat.name == "Tea party"
    assert chat.participants == ["alice", "bob", "carol"]
    assert chat.admins == ["alice"]
    assert chat.created_by == "alice"
    assert chat.last_message_time == chat.created_at


def test_group_scenario_admin_follows_membership(users):
    chat_id = create_group("Crew", ["alice", "bob", "carol"], "alice")

    remove_participant_from_chat(chat_id, "bob")
    chat = get_chat(chat_id)
    assert chat.participants == ["alice", "carol"]
    assert chat.admins == ["alice"]

    add_group_admin(chat_id, "carol")
    assert get_chat(chat_id).admins == ["alice", "carol"]

    remove_participant_from_chat(chat_id, "carol")
    chat = get_chat(chat_id)
    assert "carol" not in chat.admins
    assert chat.admins == ["alice"]
    _assert_admins_within_participants(chat_id)


def test_removing_last_admin_promotes_next_participant(users):
    chat_id = create_group("Crew", ["bob", "carol"], "alice")
    remove_participant_from_chat(chat_id, "alice")

    chat = get_chat(chat_id)
    assert chat.participants == ["bob", "carol"]
    assert chat.admins == ["bob"]


def test_group_left_by_everyone_is_archived(users):
    chat_id = create_group("Solo", [], "alice")
    remove_participant_from_chat(chat_id, "alice")

    chat = get_chat(chat_id)
    assert chat.participants == []
    assert chat.admins == []
    assert chat.is_archived


def test_removing_non_member_is_a_no_op(users, store):
    chat_id = create_group("Crew", ["bob"], "alice")
    before = store.data(f"chats/{chat_id}")
    remove_participant_from_chat(chat_id, "carol")
    assert store.data(f"chats/{chat_id}") == before


def test_admin_must_be_a_participant(users):
    chat_id = create_group("Crew", ["bob"], "alice")
    with pytest.raises(InvalidChatOperation):
        add_group_admin(chat_id, "carol")
    with pytest.raises(InvalidChatOperation):
        update_chat(chat_id, {"admins": ["alice", "carol"]})
    _assert_admins_within_participants(chat_id)


def test_last_admin_cannot_be_removed(users):
    chat_id = create_group("Crew", ["bob"], "alice")
    with pytest.raises(InvalidChatOperation):
        remove_group_admin(chat_id, "alice")

    add_group_admin(chat_id, "bob")
    remove_group_admin(chat_id, "alice")
    assert get_chat(chat_id).admins == ["bob"]
    assert is_group_admin(chat_id, "bob")
    assert not is_group_admin(chat_id, "alice")


def test_adding_a_participant_twice_keeps_one_entry(users):
    chat_id = create_group("Crew", [], "alice")
    add_participant_to_chat(chat_id, "bob")
    add_participant_to_chat(chat_id, "bob")
    assert get_chat(chat_id).participants == ["alice", "bob"]


def test_direct_chat_membership_is_fixed(users):
    chat_id = get_or_create_direct_chat("alice", "bob")
    with pytest.raises(InvalidChatOperation):
        add_participant_to_chat(chat_id, "carol")
    with pytest.raises(InvalidChatOperation):
        remove_participant_from_chat(chat_id, "bob")
    with pytest.raises(InvalidChatOperation):
        add_group_admin(chat_id, "alice")


def test_chat_type_cannot_change(users):
    chat_id = get_or_create_direct_chat("alice", "bob")
    with pytest.raises(InvalidChatOperation):
        update_chat(chat_id, {"type": "group"})
    with pytest.raises(InvalidChatOperation):
        update_chat(chat_id, {"participants": ["alice"]})


def test_update_chat_and_group_aliases(users):
    chat_id = create_group("Crew", ["bob"], "alice")
    update_group_name(chat_id, "Renamed")
    update_chat(chat_id, {"isArchived": True, "name": None})

    group = get_group(chat_id)
    assert group.name == "Renamed"
    assert group.is_archived


def test_group_queries(users):
    g1 = create_group("One", ["bob"], "alice")
    g2 = create_group("Two", ["carol"], "bob")
    get_or_create_direct_chat("alice", "carol")

    assert {g.id for g in get_groups_for_user("bob")} == {g1, g2}
    assert {g.id for g in get_groups_for_user("alice")} == {g1}
    assert {g.id for g in get_all_groups()} == {g1, g2}
    assert get_group(get_or_create_direct_chat("alice", "carol")) is None


def test_operations_on_missing_chat_raise(users):
    with pytest.raises(ChatNotFound):
        add_participant_to_chat("nope", "bob")
    with pytest.raises(ChatNotFound):
        delete_chat_and_messages("nope")
    assert get_chat("nope") is None


# ---------- listing / pinning ----------

def test_get_chats_sorted_by_last_activity(users):
    older = create_group("Older", ["bob"], "alice")
    newer = create_group("Newer", ["bob"], "alice")
    direct = get_or_create_direct_chat("alice", "bob")

    assert [c.id for c in get_chats("alice")] == [direct, newer, older]

    send_message(older, "bob", "bump")
    assert [c.id for c in get_chats("alice")] == [older, direct, newer]
    assert [c.id for c in get_chats("carol")] == []


def test_chats_without_last_message_time_sort_last(store, users):
    store.collection("chats").document("ancient").set({
        "type": "group", "participants": ["alice"], "admins": ["alice"], "createdBy": "alice",
    })
    recent = create_group("Recent", [], "alice")
    assert [c.id for c in get_chats("alice")] == [recent, "ancient"]


def test_toggle_pin_chat(users):
    chat_id = get_or_create_direct_chat("alice", "bob")
    toggle_pin_chat(chat_id, "alice", True)
    toggle_pin_chat(chat_id, "alice", True)
    assert get_chat(chat_id).pinned_by == ["alice"]
    toggle_pin_chat(chat_id, "alice", False)
    assert get_chat(chat_id).pinned_by == []


# ---------- deletion ----------

def test_delete_chat_keeps_history(store, users):
    chat_id = get_or_create_direct_chat("alice", "bob")
    send_message(chat_id, "alice", "hi")
    delete_chat(chat_id)
    assert get_chat(chat_id) is None
    assert len(store.paths(f"chats/{chat_id}/messages/")) == 1


def test_delete_chat_and_messages_small_chat_is_one_batch(store, users):
    chat_id = get_or_create_direct_chat("alice", "bob")
    for text in ("a", "b", "c"):
        send_message(chat_id, "alice", text)
    store.batch_sizes.clear()

    assert delete_chat_and_messages(chat_id) == 3
    assert store.batch_sizes == [4]
    assert store.paths(f"chats/{chat_id}") == []


def test_delete_group_removes_group_message_path_and_legacy_record(store, users):
    chat_id = create_group("Crew", ["bob"], "alice")
    store.collection("groups").document(chat_id).set({"name": "Crew"})
    send_message(chat_id, "bob", "hello")

    with pytest.raises(NotGroupAdmin):
        delete_group(chat_id, "bob")
    assert get_chat(chat_id) is not None

    assert delete_group(chat_id, "alice") == 1
    assert store.paths(f"groups/{chat_id}") == []
    assert store.paths(f"chats/{chat_id}") == []


def test_large_delete_is_chunked_and_removes_chat_last(store, users, settings):
    settings.FIRESTORE_BATCH_LIMIT = 3
    chat_id = get_or_create_direct_chat("alice", "bob")
    for i in range(7):
        send_message(chat_id, "alice", f"m{i}")
    store.batch_sizes.clear()

    assert delete_chat_and_messages(chat_id) == 7
    assert store.batch_sizes == [3, 3, 1, 1]
    assert store.paths(f"chats/{chat_id}") == []


def test_failed_single_batch_delete_keeps_chat_and_messages(store, users):
    chat_id = get_or_create_direct_chat("alice", "bob")
    for i in range(3):
        send_message(chat_id, "alice", f"m{i}")
    committed = list(store.batch_sizes)

    store.fail_batch_commit()
    with pytest.raises(ServiceUnavailable):
        delete_chat_and_messages(chat_id)

    assert get_chat(chat_id) is not None
    assert len(store.paths(f"chats/{chat_id}/messages/")) == 3
    assert store.batch_sizes == committed


def test_failed_chunk_leaves_chat_in_place(store, users, settings):
    settings.FIRESTORE_BATCH_LIMIT = 3
    chat_id = get_or_create_direct_chat("alice", "bob")
    for i in range(7):
        send_message(chat_id, "alice", f"m{i}")

    store.fail_batch_commit(2)
    with pytest.raises(Exception):
        delete_chat_and_messages(chat_id)

    assert get_chat(chat_id) is not None
    # first chunk went through, the failed one wrote nothing
    assert len(store.paths(f"chats/{chat_id}/messages/")) == 4
