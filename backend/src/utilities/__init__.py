from .constants import *
from .config import Settings
from .utility_functions import now_ts, make_ack, make_error
