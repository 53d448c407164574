__version__ = '0.1.0'

from .operation import create_operation, make_id, encode_body, now_ms, MUTATING_METHODS, DEFAULT_HEADERS
from .storage import memory_storage, file_storage, MemoryStorage, FileStorage, QuotaExceededError
from .store import QueueStore, QUEUE_KEY, META_KEY
from .events import Broadcaster, ENQUEUE, SYNC_START, SYNC_PROGRESS, SYNC_END, EVENT_TYPES
from .policy import classify, DELIVERED, DROP, HALT
from .transport import RequestsTransport, NetworkError
from .connectivity import Connectivity
from .offline import offline_queue, OfflineQueue
from .scheduler import init_offline_queue
from .reachability import check_reachable, next_probe_delay, ReachabilityMonitor
from .config import load_settings, DEFAULTS

__all__ = [
    'create_operation', 'make_id', 'encode_body', 'now_ms', 'MUTATING_METHODS', 'DEFAULT_HEADERS',
    'memory_storage', 'file_storage', 'MemoryStorage', 'FileStorage', 'QuotaExceededError',
    'QueueStore', 'QUEUE_KEY', 'META_KEY',
    'Broadcaster', 'ENQUEUE', 'SYNC_START', 'SYNC_PROGRESS', 'SYNC_END', 'EVENT_TYPES',
    'classify', 'DELIVERED', 'DROP', 'HALT',
    'RequestsTransport', 'NetworkError',
    'Connectivity',
    'offline_queue', 'OfflineQueue',
    'init_offline_queue',
    'check_reachable', 'next_probe_delay', 'ReachabilityMonitor',
    'load_settings', 'DEFAULTS',
    '__version__',
]
