import json

import httpx
import pytest

from finacco.core.errors import ExternalServiceError, FormValidationError
from finacco.domains.assistant.llm import GeminiClient, validate_key_format

from fakes import SleepRecorder

API_KEY = "AIza" + "k" * 35


def reply(text):
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


def make_client(handler, sleep=None):
    return GeminiClient(
        API_KEY,
        model="gemini-test",
        base_url="https://llm.example.com/v1beta",
        max_attempts=3,
        base_delay=1.0,
        transport=httpx.MockTransport(handler),
        sleep=sleep or SleepRecorder(),
    )


@pytest.mark.parametrize("key,message", [
    ("", "Please enter a valid API key"),
    ("sk-" + "x" * 40, 'Invalid API key format. Key should start with "AIza"'),
    ("AIza123", "API key appears too short. Please check the key"),
])
def test_key_format(key, message):
    with pytest.raises(FormValidationError) as exc_info:
        validate_key_format(key)

    assert exc_info.value.errors == {"api_key": message}


def test_key_format_strips_whitespace():
    assert validate_key_format(f"  {API_KEY}\n") == API_KEY


def test_repr_masks_the_key():
    assert API_KEY not in repr(make_client(lambda request: reply("")))


async def test_generate_sends_prompt_and_config():
    requests = []

    def handler(request):
        requests.append(request)
        return reply("true")

    text = await make_client(handler).generate("Is this a document?", temperature=0.1, max_output_tokens=5)

    assert text == "true"
    request = requests[0]
    assert request.url.path == "/v1beta/models/gemini-test:generateContent"
    assert request.url.params["key"] == API_KEY
    assert json.loads(request.content) == {
        "contents": [{"parts": [{"text": "Is this a document?"}]}],
        "generationConfig": {"temperature": 0.1, "maxOutputTokens": 5},
    }


async def test_server_errors_are_retried_with_backoff():
    sleep = SleepRecorder()
    responses = [httpx.Response(503), httpx.Response(500), reply("ok")]

    text = await make_client(lambda request: responses.pop(0), sleep).generate("hi")

    assert text == "ok"
    assert sleep.delays == [1.0, 2.0]


async def test_timeouts_give_up_after_max_attempts():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ExternalServiceError) as exc_info:
        await make_client(handler).generate("hi")

    assert exc_info.value.code == "llm_timeout"
    assert len(calls) == 3


async def test_connection_errors_report_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ExternalServiceError) as exc_info:
        await make_client(handler).generate("hi")

    assert exc_info.value.code == "llm_unavailable"


async def test_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"error": {"message": "Request contains an invalid argument."}})

    with pytest.raises(ExternalServiceError) as exc_info:
        await make_client(handler).generate("hi")

    assert exc_info.value.code == "llm_error"
    assert "invalid argument" in exc_info.value.message
    assert len(calls) == 1


async def test_empty_candidates():
    with pytest.raises(ExternalServiceError) as exc_info:
        await make_client(lambda request: httpx.Response(200, json={"candidates": []})).generate("hi")

    assert exc_info.value.code == "llm_empty"


async def test_verify_key_accepts_a_working_key():
    def handler(request):
        assert request.method == "GET"
        assert request.url.path == "/v1beta/models/gemini-test"
        return httpx.Response(200, json={"name": "models/gemini-test"})

    await make_client(handler).verify_key()


@pytest.mark.parametrize("error,hint", [
    ("API key not valid. Please pass a valid API key.", "Invalid API key. Please make sure you copied the entire key correctly"),
    ("Generative Language API has not been enabled for this project", "The Gemini API is not enabled for this API key. Please enable it in your Google Cloud Console"),
    ("This API method requires billing to be enabled", "Please ensure billing is enabled for your Google Cloud project"),
])
async def test_verify_key_explains_rejections(error, hint):
    client = make_client(lambda request: httpx.Response(400, json={"error": {"message": error}}))

    with pytest.raises(FormValidationError) as exc_info:
        await client.verify_key()

    assert exc_info.value.errors == {"api_key": hint}
