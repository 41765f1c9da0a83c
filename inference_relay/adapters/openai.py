"""OpenAIAdapter: OpenAI chat completions, vision and chat."""
from openai import AsyncOpenAI

from inference_relay.adapters.base import ProviderAdapter
from inference_relay.config import ProviderConfig
from inference_relay.constants import OPENAI_MAX_TOKENS
from inference_relay.models import ProviderPayload, ProviderResponse
from inference_relay.transport import TransportSwitch


def build_messages(payload: ProviderPayload) -> list[dict]:
    match payload.image:
        case None:
            return list(payload.messages) or [{"role": "user", "content": payload.prompt}]
        case image:
            return [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": payload.prompt},
                        {"type": "image_url", "image_url": {"url": image.data_url}},
                    ],
                }
            ]


class OpenAIAdapter(ProviderAdapter):

    def __init__(self, config: ProviderConfig, transport: TransportSwitch) -> None:
        super().__init__(config, transport)
        # SDK retries are disabled; RetryEngine owns the retry policy.
        self._clients = {
            use_proxy: AsyncOpenAI(
                api_key=config.api_key,
                base_url=config.endpoint,
                http_client=transport.client(use_proxy),
                max_retries=0,
            )
            for use_proxy in (False, True)
        }

    async def invoke(
        self, payload: ProviderPayload, timeout_budget: float, use_proxy: bool
    ) -> ProviderResponse:
        model = payload.model or self._config.model
        response = await self._clients[use_proxy].chat.completions.create(
            model=model,
            messages=build_messages(payload),
            max_tokens=OPENAI_MAX_TOKENS,
            timeout=timeout_budget,
        )
        content = response.choices[0].message.content
        return ProviderResponse(text=content.strip() if content else "", model=model)
