import logging
import time
from typing import Any, Callable, Optional

from langchain_google_genai import ChatGoogleGenerativeAI

from spacio.config import Settings, get_settings
from spacio.exceptions import AssistantError, GeminiUnavailableError, QuotaExceededError


logger = logging.getLogger(__name__)

RATE_LIMIT_MARKERS = ("429", "resourceexhausted", "resource_exhausted", "quota", "rate limit")
BAD_REQUEST_MARKERS = ("400", "invalidargument", "invalid_argument", "bad request")
TRANSIENT_ERROR_NAMES = (
    "ConnectionError",
    "TimeoutError",
    "Timeout",
    "ReadTimeout",
    "ConnectTimeout",
    "ServiceUnavailable",
    "DeadlineExceeded",
    "InternalServerError",
)


def is_rate_limit_error(error: Exception) -> bool:
    text = f"{type(error).__name__} {error}".lower()
    return any(marker in text for marker in RATE_LIMIT_MARKERS)


def is_bad_request_error(error: Exception) -> bool:
    text = f"{type(error).__name__} {error}".lower()
    return any(marker in text for marker in BAD_REQUEST_MARKERS)


def is_transient_error(error: Exception) -> bool:
    return isinstance(error, (ConnectionError, TimeoutError)) or type(error).__name__ in TRANSIENT_ERROR_NAMES


def _response_text(result: Any) -> str:
    content = getattr(result, "content", result)
    if isinstance(content, list):
        # multi-part replies come back as a list of strings or {"text": ...} blocks
        parts = []
        for part in content:
            parts.append(part.get("text", "") if isinstance(part, dict) else str(part))
        return "".join(parts)
    return str(content)


class GeminiClient:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm: Optional[Any] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the client for the generative API.

        Args:
            settings: Settings to read the key, model and retry policy from
            llm: Chat model to use instead of building one (tests pass a fake)
            sleep: Function used to wait between retries
        """
        self.settings = settings or get_settings()
        self.sleep = sleep
        self.llm = llm if llm is not None else self._setup_llm()

    def _setup_llm(self):
        """Setup the Gemini LLM, or None when no usable key is configured."""
        if not self.settings.has_gemini_key:
            logger.warning("GOOGLE_API_KEY is not configured; the assistant will use fallback replies")
            return None

        # retries are handled here so rate limits can be told apart from other failures
        return ChatGoogleGenerativeAI(
            model=self.settings.gemini_model,
            google_api_key=self.settings.google_api_key,
            temperature=self.settings.temperature,
            max_retries=1,
        )

    @property
    def available(self) -> bool:
        return self.llm is not None

    def generate(self, prompt: str) -> str:
        """
        Send one prompt and return the reply text.

        Rate-limit and network failures are retried with exponential backoff
        (``base * 2**attempt``). Bad requests fail immediately.

        Raises:
            GeminiUnavailableError: no API key configured
            QuotaExceededError: still rate limited after the last retry
            AssistantError: any other API failure
        """
        if self.llm is None:
            raise GeminiUnavailableError("Gemini API key is not configured")

        max_retries = self.settings.gemini_max_retries
        base_delay = self.settings.gemini_retry_base_delay
        attempt = 0
        while True:
            try:
                result = self.llm.invoke(prompt)
                return _response_text(result)
            except Exception as e:
                rate_limited = is_rate_limit_error(e)
                retryable = rate_limited or (is_transient_error(e) and not is_bad_request_error(e))
                if retryable and attempt < max_retries:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        "Gemini call failed (%s), retrying in %.1fs (attempt %s/%s)",
                        type(e).__name__, delay, attempt + 1, max_retries,
                    )
                    self.sleep(delay)
                    attempt += 1
                    continue

                if rate_limited:
                    logger.error("Gemini quota exceeded after %s retries", attempt)
                    raise QuotaExceededError("Gemini API quota exceeded") from e
                logger.error("Gemini call failed: %s", e)
                raise AssistantError(f"Gemini API error: {e}") from e
