# Models package
from groupchat.models.user import User
from groupchat.models.api_token import ApiToken
from groupchat.models.group import Group, GroupMembership
from groupchat.models.message import Message
from groupchat.models.reaction import Reaction
from groupchat.models.read_receipt import ReadReceipt
