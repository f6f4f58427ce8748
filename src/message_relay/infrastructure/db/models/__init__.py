"""Import all models so ``Base.metadata`` sees them."""
from message_relay.infrastructure.db.models.message import MessageModel

__all__ = [
    "MessageModel",
]
