"""
Messaging core: relationship gate, conversation list, open thread and presence,
all driven through the DataService operations.
"""

from fitsocial.messaging.conversations import ConversationAggregator
from fitsocial.messaging.identity import ProfileResolver
from fitsocial.messaging.notifications import Notice, Notifier
from fitsocial.messaging.presence import PresenceHeartbeat
from fitsocial.messaging.relationships import RelationshipGate
from fitsocial.messaging.session import MessagingSession
from fitsocial.messaging.thread import MessageThreadController, ThreadState

__all__ = [
    "ConversationAggregator",
    "MessageThreadController",
    "MessagingSession",
    "Notice",
    "Notifier",
    "PresenceHeartbeat",
    "ProfileResolver",
    "RelationshipGate",
    "ThreadState",
]
