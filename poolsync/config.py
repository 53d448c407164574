"""Settings read from the environment."""

import os

DEFAULTS = {
    'base_url': '',
    'storage_dir': '',
    'sync_interval': 20.0,
    'initial_delay': 1.5,
    'timeout': 10.0,
    'probe_path': '/.auth/me',
}

_ENV = {
    'base_url': 'POOLSYNC_BASE_URL',
    'storage_dir': 'POOLSYNC_STORAGE_DIR',
    'sync_interval': 'POOLSYNC_SYNC_INTERVAL',
    'initial_delay': 'POOLSYNC_INITIAL_DELAY',
    'timeout': 'POOLSYNC_TIMEOUT',
    'probe_path': 'POOLSYNC_PROBE_PATH',
}


def load_settings(env=None):
    """
    Build the settings dict from environment variables, falling back to DEFAULTS.

    An empty storage_dir means the queue lives in memory only.
    """
    env = os.environ if env is None else env
    settings = dict(DEFAULTS)
    for name, var in _ENV.items():
        raw = env.get(var)
        if raw is None or raw.strip() == '':
            continue
        if isinstance(DEFAULTS[name], float):
            try:
                value = float(raw)
            except ValueError:
                raise ValueError(f"poolsync: {var} must be a number, got '{raw}'")
            if value < 0:
                raise ValueError(f"poolsync: {var} must not be negative")
            settings[name] = value
        else:
            settings[name] = raw.strip()
    return settings
