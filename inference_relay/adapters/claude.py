"""ClaudeAdapter: Anthropic Claude vision backend."""
from anthropic import AsyncAnthropic

from inference_relay.adapters.base import ProviderAdapter
from inference_relay.config import ProviderConfig
from inference_relay.constants import CLAUDE_MAX_TOKENS
from inference_relay.models import ProviderPayload, ProviderResponse
from inference_relay.transport import TransportSwitch


class ClaudeAdapter(ProviderAdapter):

    def __init__(self, config: ProviderConfig, transport: TransportSwitch) -> None:
        super().__init__(config, transport)
        self._clients = {
            use_proxy: AsyncAnthropic(
                api_key=config.api_key,
                http_client=transport.client(use_proxy),
                max_retries=0,
            )
            for use_proxy in (False, True)
        }

    async def invoke(
        self, payload: ProviderPayload, timeout_budget: float, use_proxy: bool
    ) -> ProviderResponse:
        content: list[dict] = []
        match payload.image:
            case None:
                pass
            case image:
                content.append(
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": image.media_type,
                            "data": image.base64,
                        },
                    }
                )
        content.append({"type": "text", "text": payload.prompt})

        model = payload.model or self._config.model
        message = await self._clients[use_proxy].messages.create(
            model=model,
            max_tokens=CLAUDE_MAX_TOKENS,
            messages=[{"role": "user", "content": content}],
            timeout=timeout_budget,
        )
        return ProviderResponse(text=message.content[0].text.strip(), model=model)
