import pytest

from spacio.exceptions import AssistantError, GeminiUnavailableError, QuotaExceededError
from spacio.gemini_client import GeminiClient, is_rate_limit_error

from tests.conftest import FakeChatModel


class ResourceExhausted(Exception):
    pass


class TestErrorClassification:
    def test_rate_limit_by_message(self):
        assert is_rate_limit_error(Exception("429 Too Many Requests"))
        assert is_rate_limit_error(Exception("You exceeded your current quota"))

    def test_rate_limit_by_class_name(self):
        assert is_rate_limit_error(ResourceExhausted("slow down"))

    def test_other_errors(self):
        assert not is_rate_limit_error(ValueError("400 API key not valid"))


class TestGenerate:
    def test_returns_reply_text(self, gemini, fake_llm):
        fake_llm.replies = ["hello there"]
        assert gemini.generate("hi") == "hello there"
        assert fake_llm.prompts == ["hi"]

    def test_joins_multipart_content(self, settings):
        class Reply:
            content = [{"type": "text", "text": "part one, "}, "part two"]

        class Model:
            def invoke(self, prompt):
                return Reply()

        client = GeminiClient(settings=settings, llm=Model(), sleep=lambda delay: None)
        assert client.generate("hi") == "part one, part two"

    def test_retries_rate_limit_with_backoff(self, gemini, fake_llm, sleeps):
        fake_llm.replies = [Exception("429 Resource has been exhausted"), "ok"]

        assert gemini.generate("hi") == "ok"
        assert sleeps == [1.0]
        assert len(fake_llm.prompts) == 2

    def test_quota_exceeded_after_retries(self, gemini, fake_llm, sleeps):
        fake_llm.replies = [Exception("429 quota exceeded")] * 3

        with pytest.raises(QuotaExceededError):
            gemini.generate("hi")
        assert sleeps == [1.0, 2.0]
        assert len(fake_llm.prompts) == 3

    def test_retries_network_errors(self, gemini, fake_llm, sleeps):
        fake_llm.replies = [ConnectionError("connection reset"), "recovered"]

        assert gemini.generate("hi") == "recovered"
        assert sleeps == [1.0]

    def test_bad_request_is_not_retried(self, gemini, fake_llm, sleeps):
        fake_llm.replies = [ValueError("400 API key not valid")]

        with pytest.raises(AssistantError) as excinfo:
            gemini.generate("hi")
        assert not isinstance(excinfo.value, QuotaExceededError)
        assert sleeps == []
        assert len(fake_llm.prompts) == 1

    def test_retry_count_comes_from_settings(self, settings, sleeps):
        settings.gemini_max_retries = 0
        model = FakeChatModel([Exception("429")])
        client = GeminiClient(settings=settings, llm=model, sleep=sleeps.append)

        with pytest.raises(QuotaExceededError):
            client.generate("hi")
        assert sleeps == []


class TestAvailability:
    def test_missing_key(self, settings):
        settings.google_api_key = None
        client = GeminiClient(settings=settings)

        assert client.available is False
        with pytest.raises(GeminiUnavailableError):
            client.generate("hi")

    def test_placeholder_key(self, settings):
        settings.google_api_key = "your-gemini-api-key-here"
        assert GeminiClient(settings=settings).available is False
