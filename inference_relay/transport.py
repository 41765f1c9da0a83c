"""TransportSwitch: shared outbound connection pools, direct and via the optional proxy."""
import logging
from typing import Optional

import httpx

from inference_relay.config import ProviderConfig

logger = logging.getLogger(__name__)


class TransportSwitch:
    """Owns one pooled ``httpx.AsyncClient`` per route.

    Both clients are shared by every in-flight request; httpx pools are safe
    for concurrent use. Without a configured proxy the proxied route is the
    direct client.
    """

    def __init__(self, proxy_url: Optional[str] = None) -> None:
        self._proxy_url = proxy_url
        self._direct = httpx.AsyncClient()
        self._proxied = httpx.AsyncClient(proxy=proxy_url) if proxy_url else self._direct

    @property
    def proxy_configured(self) -> bool:
        return self._proxy_url is not None

    def use_proxy(self, provider: ProviderConfig, attempt: int) -> bool:
        """Only the first attempt of a proxy-optional provider goes through the proxy."""
        return attempt == 1 and provider.proxy_optional and self.proxy_configured

    def client(self, use_proxy: bool) -> httpx.AsyncClient:
        match use_proxy:
            case True:
                return self._proxied
            case False:
                return self._direct

    async def aclose(self) -> None:
        await self._direct.aclose()
        match self._proxied is self._direct:
            case True:
                pass
            case False:
                await self._proxied.aclose()
