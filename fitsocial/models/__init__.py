from fitsocial.models.base import Base
from fitsocial.models.follow import BlockedUser, Follow
from fitsocial.models.message import Message
from fitsocial.models.profile import Profile

__all__ = [
    "Base",
    "Profile",
    "Message",
    "Follow",
    "BlockedUser",
]
