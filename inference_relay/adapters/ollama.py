"""OllamaAdapter: locally hosted model server via /api/chat."""
from inference_relay.adapters.base import ProviderAdapter
from inference_relay.constants import OLLAMA_CHAT_PATH
from inference_relay.models import ProviderPayload, ProviderResponse


class OllamaAdapter(ProviderAdapter):

    def _body(self, payload: ProviderPayload) -> dict:
        message: dict = {"role": "user", "content": payload.prompt}
        match payload.image:
            case None:
                pass
            case image:
                message["images"] = [image.base64]
        history = [dict(m) for m in payload.messages[:-1]]
        return {
            "model": payload.model or self._config.model,
            "messages": history + [message],
            "stream": False,
        }

    async def invoke(
        self, payload: ProviderPayload, timeout_budget: float, use_proxy: bool
    ) -> ProviderResponse:
        url = self._config.endpoint.rstrip("/") + OLLAMA_CHAT_PATH
        body = self._body(payload)
        resp = await self._transport.client(use_proxy).post(url, json=body, timeout=timeout_budget)
        resp.raise_for_status()
        data = resp.json()
        content = data.get("message", {}).get("content") or data.get("response") or ""
        return ProviderResponse(text=content.strip(), model=body["model"])
