"""Tests for RemoteSummarizer."""

import json

import httpx
import pytest
import pytest_asyncio
import respx

from src.ingestion.http_client import HTTPClient, RetryConfig
from src.summarization.summarizer import RemoteSummarizer, Summarizer, SummarizerError

URL = "https://summarizer.example.com/v1/summaries"


@pytest_asyncio.fixture
async def http():
    async with HTTPClient(RetryConfig(max_retries=0)) as client:
        yield client


@pytest.fixture
def summarizer(http) -> RemoteSummarizer:
    return RemoteSummarizer(http, url=URL, api_key="sk-test", model="gpt-4o-mini")


def test_satisfies_protocol(summarizer):
    assert isinstance(summarizer, Summarizer)


class TestRemoteSummarizer:
    @pytest.mark.asyncio
    @respx.mock
    async def test_results_parsed(self, summarizer):
        route = respx.post(URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "results": [
                        {"content_id": "a", "short": "s", "long": "l"},
                        {"contentId": "b", "ai_summary_short": "s2", "model": "other"},
                        {"content_id": "c", "error": "too short"},
                    ]
                },
            )
        )

        results = await summarizer.summarize(["a", "b", "c"])

        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert json.loads(request.content) == {
            "content_ids": ["a", "b", "c"],
            "model": "gpt-4o-mini",
        }
        a, b, c = results
        assert (a.content_id, a.short, a.long, a.model) == ("a", "s", "l", "gpt-4o-mini")
        assert (b.content_id, b.short, b.model) == ("b", "s2", "other")
        assert a.ok and b.ok
        assert not c.ok

    @pytest.mark.asyncio
    async def test_no_ids_no_request(self, summarizer):
        assert await summarizer.summarize([]) == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_raised(self, summarizer):
        respx.post(URL).mock(return_value=httpx.Response(502))

        with pytest.raises(SummarizerError):
            await summarizer.summarize(["a"])

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_json_raised(self, summarizer):
        respx.post(URL).mock(return_value=httpx.Response(200, text="<html>"))

        with pytest.raises(SummarizerError):
            await summarizer.summarize(["a"])
