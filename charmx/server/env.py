"""
Environment configuration for CharmX

Configuration via environment variables:
- NETWORK: mainnet | testnet4 | testnet | signet | regtest (default mainnet)
- MEMPOOL_API_URL: base URL of a mempool.space-compatible API
- FETCH_TIMEOUT: seconds to wait for a transaction fetch (default 30)
- VKEYS_FILE: JSON file with the spell verification keys
- REST_HOST / REST_PORT: HTTP listen address (default 127.0.0.1:8000)
- REST_API_KEY: if set, required in the X-API-Key header
- LOG_LEVEL: root logging level (default INFO)
"""

import logging
from os import environ

from charmx.lib import util
from charmx.lib.address import NETWORKS

DEFAULT_API_URLS = {
    'mainnet': 'https://mempool.space/api',
    'testnet4': 'https://mempool.space/testnet4/api',
    'testnet': 'https://mempool.space/testnet/api',
    'signet': 'https://mempool.space/signet/api',
}


class EnvError(Exception):
    pass


class Env:
    """Wraps environment configuration."""

    def __init__(self):
        self.logger = util.class_logger(__name__, self.__class__.__name__)
        self.network = self.default('NETWORK', 'mainnet').strip().lower()
        if self.network not in NETWORKS:
            raise EnvError(f'unknown NETWORK {self.network!r}; '
                           f'expected one of {", ".join(NETWORKS)}')
        self.mempool_api_url = self.default(
            'MEMPOOL_API_URL', DEFAULT_API_URLS.get(self.network, '')).rstrip('/')
        self.fetch_timeout = self.integer('FETCH_TIMEOUT', 30)
        if self.fetch_timeout <= 0:
            raise EnvError('FETCH_TIMEOUT must be positive')
        self.vkeys_file = self.default('VKEYS_FILE', None)
        self.rest_host = self.default('REST_HOST', '127.0.0.1')
        self.rest_port = self.integer('REST_PORT', 8000)
        self.rest_api_key = self.default('REST_API_KEY', '').strip()
        self.log_level = self.default('LOG_LEVEL', 'INFO').strip().upper()
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise EnvError(f'unknown LOG_LEVEL {self.log_level!r}')

    @classmethod
    def default(cls, envvar, default):
        return environ.get(envvar, default)

    @classmethod
    def integer(cls, envvar, default):
        value = environ.get(envvar)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            raise EnvError(f'cannot convert envvar {envvar} value {value} '
                           f'to an integer') from None
