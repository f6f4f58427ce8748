from __future__ import annotations

from enum import StrEnum


class DeliveryStatus(StrEnum):
    """Outcome of an accepted send, reported on the sender's ack."""

    DELIVERED = "delivered"  # recipient had a live connection
    STORED = "stored"  # recipient offline, picked up on next snapshot


class AckStatus(StrEnum):
    OK = "ok"
    ERROR = "error"


class LiveEvent(StrEnum):
    """Event names exchanged over the live channel."""

    # client -> server
    JOIN = "join"
    PRIVATE_MESSAGE = "private message"
    READ_MESSAGE = "read message"
    GET_UNREAD_COUNT = "get unread count"
    PING = "ping"

    # server -> client
    CHAT_MESSAGE = "chat message"
    ACK = "ack"
    UNREAD_COUNT_RESPONSE = "unread count response"
    UPDATE_USERS = "update users"
    ERROR = "error"
    PONG = "pong"
