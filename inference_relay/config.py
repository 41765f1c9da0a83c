from dataclasses import dataclass
from typing import Optional
import os
from dotenv import load_dotenv

from inference_relay.constants import (
    CLAUDE_IMAGE_PROFILE,
    CLAUDE_VISION_MODEL,
    CLOUD_CALL_TIMEOUT,
    DEEPSEEK_IMAGE_PROFILE,
    DEEPSEEK_MODEL,
    DEFAULT_MAX_ATTEMPTS,
    FALLBACK_MAX_ATTEMPTS,
    KIND_CHAT,
    KIND_IMAGE,
    KIND_LOCAL_CHAT,
    LOCAL_CALL_TIMEOUT,
    OLLAMA_IMAGE_PROFILE,
    OLLAMA_MODEL,
    OLLAMA_URL,
    OPENAI_IMAGE_PROFILE,
    OPENAI_VISION_MODEL,
    PROVIDER_CLAUDE,
    PROVIDER_DEEPSEEK,
    PROVIDER_OLLAMA,
    PROVIDER_OPENAI,
    PROXY_MAX_ATTEMPTS,
    REQUEST_DEADLINE,
    RETRY_BACKOFF_UNIT,
)


@dataclass(frozen=True)
class ImageProfile:
    max_dimension: int
    quality: int
    token_budget: Optional[int] = None
    fallback_dimension: int = 512
    fallback_quality: int = 70

    @classmethod
    def of(cls, values: tuple) -> "ImageProfile":
        return cls(*values)


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    api_key: Optional[str]
    endpoint: Optional[str]
    model: str
    vision: bool
    max_attempts: int
    proxy_optional: bool
    timeout: float
    image_profile: ImageProfile
    payload_kinds: frozenset[str]
    requires_api_key: bool = True
    requires_endpoint: bool = False

    @property
    def is_configured(self) -> bool:
        """True when the credentials and endpoint this provider needs are present."""
        match (self.requires_api_key, self.api_key, self.requires_endpoint, self.endpoint):
            case (True, None | "", _, _):
                return False
            case (_, _, True, None | ""):
                return False
            case _:
                return True

    def serves(self, kind: str) -> bool:
        return kind in self.payload_kinds


@dataclass(frozen=True)
class Config:
    log_level: str
    proxy_url: Optional[str]
    request_deadline: float
    backoff_unit: float
    providers: tuple[ProviderConfig, ...]

    def provider(self, name: str) -> ProviderConfig | None:
        return next((p for p in self.providers if p.name == name), None)

    @classmethod
    def from_env(cls) -> "Config":
        load_dotenv()

        log_level = os.getenv("LOG_LEVEL", "INFO")
        proxy_url = os.getenv("PROXY_URL") or None
        deadline = os.getenv("REQUEST_DEADLINE", str(REQUEST_DEADLINE))
        backoff = os.getenv("RETRY_BACKOFF_UNIT", str(RETRY_BACKOFF_UNIT))

        # A proxied first attempt costs one of the default three attempts.
        cloud_attempts = PROXY_MAX_ATTEMPTS if proxy_url else DEFAULT_MAX_ATTEMPTS

        providers = (
            ProviderConfig(
                name=PROVIDER_OPENAI,
                api_key=os.getenv("OPENAI_API_KEY") or None,
                endpoint=os.getenv("OPENAI_BASE_URL") or None,
                model=os.getenv("OPENAI_VISION_MODEL") or OPENAI_VISION_MODEL,
                vision=True,
                max_attempts=_int_env("OPENAI_MAX_ATTEMPTS", cloud_attempts),
                proxy_optional=True,
                timeout=_float_env("OPENAI_TIMEOUT", CLOUD_CALL_TIMEOUT),
                image_profile=ImageProfile.of(OPENAI_IMAGE_PROFILE),
                payload_kinds=frozenset({KIND_IMAGE, KIND_CHAT}),
            ),
            ProviderConfig(
                name=PROVIDER_CLAUDE,
                api_key=os.getenv("ANTHROPIC_API_KEY") or None,
                endpoint=None,
                model=os.getenv("CLAUDE_VISION_MODEL") or CLAUDE_VISION_MODEL,
                vision=True,
                max_attempts=_int_env("CLAUDE_MAX_ATTEMPTS", cloud_attempts),
                proxy_optional=True,
                timeout=_float_env("CLAUDE_TIMEOUT", CLOUD_CALL_TIMEOUT),
                image_profile=ImageProfile.of(CLAUDE_IMAGE_PROFILE),
                payload_kinds=frozenset({KIND_IMAGE}),
            ),
            ProviderConfig(
                name=PROVIDER_DEEPSEEK,
                api_key=os.getenv("DEEPSEEK_API_KEY") or None,
                endpoint=os.getenv("DEEPSEEK_BASE_URL") or None,
                model=os.getenv("DEEPSEEK_MODEL") or DEEPSEEK_MODEL,
                vision=False,
                max_attempts=_int_env("DEEPSEEK_MAX_ATTEMPTS", FALLBACK_MAX_ATTEMPTS),
                proxy_optional=False,
                timeout=_float_env("DEEPSEEK_TIMEOUT", CLOUD_CALL_TIMEOUT),
                image_profile=ImageProfile.of(DEEPSEEK_IMAGE_PROFILE),
                payload_kinds=frozenset({KIND_IMAGE, KIND_CHAT}),
                requires_endpoint=True,
            ),
            ProviderConfig(
                name=PROVIDER_OLLAMA,
                api_key=None,
                endpoint=os.getenv("OLLAMA_URL") or OLLAMA_URL,
                model=os.getenv("OLLAMA_MODEL") or OLLAMA_MODEL,
                vision=True,
                max_attempts=_int_env("OLLAMA_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
                proxy_optional=False,
                timeout=_float_env("OLLAMA_TIMEOUT", LOCAL_CALL_TIMEOUT),
                image_profile=ImageProfile.of(OLLAMA_IMAGE_PROFILE),
                payload_kinds=frozenset({KIND_LOCAL_CHAT}),
                requires_api_key=False,
                requires_endpoint=True,
            ),
        )

        return cls._validate(
            log_level=log_level,
            proxy_url=proxy_url,
            request_deadline=float(deadline),
            backoff_unit=float(backoff),
            providers=providers,
        )

    @staticmethod
    def _validate(
        log_level: str,
        proxy_url: Optional[str],
        request_deadline: float,
        backoff_unit: float,
        providers: tuple[ProviderConfig, ...],
    ) -> "Config":
        match proxy_url:
            case None:
                pass
            case str() as url if url.startswith(("http://", "https://", "socks5://")):
                pass
            case _:
                raise ValueError("PROXY_URL must be an http://, https:// or socks5:// URL")

        match request_deadline:
            case d if d <= 0:
                raise ValueError("REQUEST_DEADLINE must be positive")
            case _:
                pass

        match backoff_unit:
            case b if b < 0:
                raise ValueError("RETRY_BACKOFF_UNIT must not be negative")
            case _:
                pass

        for provider in providers:
            env = provider.name.upper()
            match (provider.max_attempts, provider.timeout):
                case (n, _) if n < 1:
                    raise ValueError(f"{env}_MAX_ATTEMPTS must be at least 1")
                case (_, t) if t <= 0:
                    raise ValueError(f"{env}_TIMEOUT must be positive")
                case _:
                    pass

        return Config(
            log_level=log_level,
            proxy_url=proxy_url,
            request_deadline=request_deadline,
            backoff_unit=backoff_unit,
            providers=providers,
        )


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name) or default)


def _float_env(name: str, default: float) -> float:
    return float(os.getenv(name) or default)
