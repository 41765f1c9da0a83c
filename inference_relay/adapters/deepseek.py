"""DeepSeekAdapter: text-only chat service used as fallback.

DeepSeek has no vision input, so an image is inlined into the prompt as a
data URL. Answers about images are therefore best effort.
"""
from openai import AsyncOpenAI

from inference_relay.adapters.base import ProviderAdapter
from inference_relay.config import ProviderConfig
from inference_relay.constants import DEEPSEEK_MAX_TOKENS, MSG_INLINE_IMAGE
from inference_relay.models import ProviderPayload, ProviderResponse
from inference_relay.transport import TransportSwitch


def inline_messages(payload: ProviderPayload) -> list[dict]:
    match (payload.image, payload.messages):
        case (None, ()):
            return [{"role": "user", "content": payload.prompt}]
        case (None, messages):
            return list(messages)
        case (image, _):
            text = payload.prompt + MSG_INLINE_IMAGE % (image.media_type, image.base64)
            return [{"role": "user", "content": text}]


class DeepSeekAdapter(ProviderAdapter):

    def __init__(self, config: ProviderConfig, transport: TransportSwitch) -> None:
        super().__init__(config, transport)
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
            messages=inline_messages(payload),
            max_tokens=DEEPSEEK_MAX_TOKENS,
            timeout=timeout_budget,
        )
        content = response.choices[0].message.content
        return ProviderResponse(text=content.strip() if content else "", model=model)
