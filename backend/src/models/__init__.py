from .models import Sequencer, Registry, PushSubscriber, PullSubscriber
from .broadcaster import IngestionQueue, Broadcaster
