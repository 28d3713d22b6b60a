"""
Raw transaction fetcher for a mempool.space-compatible REST API.

Only callers outside the decode pipeline use this: the pipeline itself
always starts from raw bytes.
"""

import asyncio
import re
from typing import Optional

import aiohttp

from charmx.lib import util
from charmx.server.env import DEFAULT_API_URLS

TXID_RE = re.compile(r'[0-9a-fA-F]{64}')


class FetchError(Exception):
    """The API could not be reached or returned an unusable response."""


class TransactionFetcher:
    """Fetches raw transaction bytes by txid."""

    def __init__(self, env=None, session: Optional[aiohttp.ClientSession] = None):
        self.logger = util.class_logger(__name__, self.__class__.__name__)
        self.network = getattr(env, 'network', 'mainnet') if env else 'mainnet'
        default_url = DEFAULT_API_URLS.get(self.network, DEFAULT_API_URLS['mainnet'])
        self.base_url = (getattr(env, 'mempool_api_url', '') if env else '') or default_url
        self.timeout = getattr(env, 'fetch_timeout', 30) if env else 30
        self.session = session

    def tx_hex_url(self, txid: str) -> str:
        return f'{self.base_url}/tx/{txid}/hex'

    async def fetch(self, txid: str) -> Optional[bytes]:
        """Return the raw transaction, or None if the API does not know it.

        Raises ValueError for a malformed txid and FetchError for network
        or server failures.
        """
        if not TXID_RE.fullmatch(txid):
            raise ValueError(f'invalid txid {txid!r}')
        url = self.tx_hex_url(txid.lower())
        own_session = self.session is None
        session = self.session or aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout))
        try:
            async with session.get(url) as resp:
                if resp.status == 404:
                    self.logger.debug(f'{txid} not found at {url}')
                    return None
                if resp.status != 200:
                    raise FetchError(f'HTTP {resp.status} from {url}')
                text = (await resp.text()).strip()
        except aiohttp.ClientError as e:
            raise FetchError(f'error fetching {url}: {e}') from e
        except asyncio.TimeoutError as e:
            raise FetchError(f'timeout fetching {url}') from e
        finally:
            if own_session:
                await session.close()

        try:
            return bytes.fromhex(text)
        except ValueError:
            raise FetchError(f'non-hex response from {url}') from None
