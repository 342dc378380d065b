from .push import PushSession
from .pull import pull_message
