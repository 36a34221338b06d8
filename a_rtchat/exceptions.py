# a_rtchat/exceptions.py


class ChatStoreError(Exception):
    """Base for errors raised by the chat gateway itself (not by Firestore)."""


class ChatNotFound(ChatStoreError):
    def __init__(self, chat_id: str):
        super().__init__(f"Chat not found: {chat_id}")
        self.chat_id = chat_id


class MessageNotFound(ChatStoreError):
    def __init__(self, chat_id: str, message_id: str):
        super().__init__(f"Message not found: {chat_id}/{message_id}")
        self.chat_id = chat_id
        self.message_id = message_id


class MessageDeleted(ChatStoreError):
    """The message was soft-deleted; its text can no longer be edited."""

    def __init__(self, message_id: str):
        super().__init__(f"Message was deleted: {message_id}")
        self.message_id = message_id


class NotGroupAdmin(ChatStoreError, PermissionError):
    def __init__(self, chat_id: str, user_id: str):
        super().__init__(f"Only admins can do this (chat={chat_id}, user={user_id})")
        self.chat_id = chat_id
        self.user_id = user_id


class InvalidChatOperation(ChatStoreError, ValueError):
    """The write would break a chat invariant (membership, admins, type)."""
