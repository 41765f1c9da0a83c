"""ProviderAdapter: uniform contract every inference backend implements."""
from abc import ABC, abstractmethod

from inference_relay.config import ProviderConfig
from inference_relay.models import ProviderPayload, ProviderResponse
from inference_relay.transport import TransportSwitch


class ProviderAdapter(ABC):

    def __init__(self, config: ProviderConfig, transport: TransportSwitch) -> None:
        self._config = config
        self._transport = transport

    @property
    def name(self) -> str:
        return self._config.name

    @abstractmethod
    async def invoke(
        self, payload: ProviderPayload, timeout_budget: float, use_proxy: bool
    ) -> ProviderResponse:
        """Run one inference call. Raises the backend's own error on failure."""
        ...
