"""All magic values live here, no inline literals anywhere else."""

# Payload kinds
KIND_IMAGE = "image"
KIND_CHAT = "chat"
KIND_LOCAL_CHAT = "local-chat"
PAYLOAD_KINDS = (KIND_IMAGE, KIND_CHAT, KIND_LOCAL_CHAT)

# Recognition intents
INTENT_PRINTER = "printer"
INTENT_MEDICINE = "medicine"
INTENT_GENERAL = "general"
DEFAULT_INTENT = INTENT_PRINTER

# Provider names
PROVIDER_OPENAI = "openai"
PROVIDER_CLAUDE = "claude"
PROVIDER_DEEPSEEK = "deepseek"
PROVIDER_OLLAMA = "ollama"

# Priority per payload kind; vision-capable providers are still moved ahead
# of text-only ones whenever the payload carries an image.
PROVIDER_PRIORITY: dict[str, tuple[str, ...]] = {
    KIND_IMAGE: (PROVIDER_OPENAI, PROVIDER_CLAUDE, PROVIDER_DEEPSEEK),
    KIND_CHAT: (PROVIDER_DEEPSEEK, PROVIDER_OPENAI),
    KIND_LOCAL_CHAT: (PROVIDER_OLLAMA,),
}

# Models
OPENAI_VISION_MODEL = "gpt-4o"
CLAUDE_VISION_MODEL = "claude-opus-4-6"
DEEPSEEK_MODEL = "deepseek-chat"
OLLAMA_MODEL = "gemma3"
OLLAMA_URL = "http://localhost:11434"
OLLAMA_CHAT_PATH = "/api/chat"

# Completion token caps
OPENAI_MAX_TOKENS = 1000
CLAUDE_MAX_TOKENS = 1024
DEEPSEEK_MAX_TOKENS = 2000

# Timeouts (seconds)
CLOUD_CALL_TIMEOUT: float = 60.0
LOCAL_CALL_TIMEOUT: float = 1800.0
REQUEST_DEADLINE: float = 1800.0

# Retry policy
DEFAULT_MAX_ATTEMPTS = 3
PROXY_MAX_ATTEMPTS = 2
FALLBACK_MAX_ATTEMPTS = 1
RETRY_BACKOFF_UNIT: float = 2.0

# Image profiles: (max_dimension, quality, token_budget, fallback_dimension, fallback_quality)
OPENAI_IMAGE_PROFILE = (2048, 85, None, 1024, 75)
CLAUDE_IMAGE_PROFILE = (1568, 85, None, 1024, 75)
DEEPSEEK_IMAGE_PROFILE = (1024, 80, 100_000, 512, 70)
OLLAMA_IMAGE_PROFILE = (1024, 85, None, 512, 70)
MAX_IMAGE_BYTES = 10 * 1024 * 1024
IMAGE_MEDIA_TYPE = "image/jpeg"
CHARS_PER_TOKEN = 4

# Prompts
PROMPT_PRINTER = (
    "Analyze the printer shown in this image. Identify the printer model and "
    "the paper size it uses. Answer in JSON with the keys "
    '"printer_model" and "paper_size".'
)
PROMPT_MEDICINE = (
    "Analyze the medicine shown in this image. Identify the medicine name and "
    "describe its efficacy. Answer in JSON with the keys "
    '"medicine_name" and "efficacy".'
)
PROMPT_GENERAL = "Describe what you see in this image in detail."
PROMPTS = {
    INTENT_PRINTER: PROMPT_PRINTER,
    INTENT_MEDICINE: PROMPT_MEDICINE,
    INTENT_GENERAL: PROMPT_GENERAL,
}
MSG_INLINE_IMAGE = "\n\nImage base64 data: data:%s;base64,%s"

# Transport error codes
CODE_CALL_TIMEOUT = "CALL_TIMEOUT"
CODE_CONNECT_TIMEOUT = "ETIMEDOUT"
CODE_PROXY = "EPROXY"
CODE_CONNECT = "ECONNECT"
CODE_RESET = "ECONNRESET"
CODE_DNS = "ENOTFOUND"
CODE_IMAGE_DECODE = "EIMAGE"
TRANSIENT_ERROR_CODES = (
    "ECONNREFUSED",
    "ECONNRESET",
    "ECONNABORTED",
    "EPIPE",
    "EHOSTUNREACH",
    "ENETUNREACH",
    CODE_CONNECT_TIMEOUT,
    CODE_PROXY,
    CODE_CONNECT,
    CODE_DNS,
)

# Stable user-facing error messages
MSG_ERR_TRANSIENT = "Could not reach the analysis service, please try again."
MSG_ERR_AUTHENTICATION = "The analysis service rejected its credentials."
MSG_ERR_QUOTA = "The analysis service quota is exhausted, please try again later."
MSG_ERR_MALFORMED = "The request could not be processed."
MSG_ERR_UNAVAILABLE = "No analysis service is available right now."
MSG_ERR_TIMEOUT = "The request timed out, please try again."
MSG_ERR_UNKNOWN = "Analysis failed, please try again."

# Log messages
MSG_ATTEMPT_OK = "✓ %s attempt %d succeeded (%.1fs%s)"
MSG_ATTEMPT_FAIL = "✗ %s attempt %d failed: %s (%.1fs%s) %s"
MSG_RETRYING = "Retrying %s in %.1fs…"
MSG_FALLING_BACK = "Falling back from %s to %s (%s)"
MSG_NO_PROVIDERS = "No eligible provider for %s request"
MSG_DEADLINE = "Request deadline expired after %d attempt(s)"
MSG_IMAGE_REENCODED = "Image estimate %d tokens over budget %d, re-encoding at %dpx"
MSG_STARTING = "inference-relay starting…"
MSG_VIA_PROXY = ", via proxy"

# Upstream response fields
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"
STATUS_OK = "ok"
