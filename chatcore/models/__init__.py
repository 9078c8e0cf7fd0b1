from .user import User
from .group import Group, GroupMember
from .message import Message
