"""
Tests for the OpenAI Embeddings Client
======================================

Version: 0.1.0
"""

import json

import httpx
import pytest

from services.document_analysis.embeddings import OpenAIEmbeddings, _is_retryable


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.test/v1")


class TestOpenAIEmbeddings:
    """Tests against a mocked HTTP transport."""

    @pytest.mark.asyncio
    async def test_embed(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"data": [{"embedding": [0.1, 0.2, 0.3]}], "usage": {"total_tokens": 7}},
            )

        embeddings = OpenAIEmbeddings(model="text-embedding-3-small", client=_client(handler))
        result = await embeddings.embed("tree permit")
        await embeddings.close()

        assert result.embedding == [0.1, 0.2, 0.3]
        assert result.token_count == 7
        assert seen["path"] == "/v1/embeddings"
        assert seen["body"] == {"model": "text-embedding-3-small", "input": "tree permit"}

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, json={"error": {"message": "input too long"}})

        embeddings = OpenAIEmbeddings(client=_client(handler))

        with pytest.raises(httpx.HTTPStatusError):
            await embeddings.embed("x")
        assert len(calls) == 1

    def test_dimensions_by_model(self) -> None:
        client = _client(lambda request: httpx.Response(200))
        assert OpenAIEmbeddings(model="text-embedding-3-large", client=client).dimensions == 3072


class TestRetryPolicy:
    """Tests for which failures are retried."""

    def _status_error(self, status: int) -> httpx.HTTPStatusError:
        request = httpx.Request("POST", "https://api.test/v1/embeddings")
        return httpx.HTTPStatusError(
            "error", request=request, response=httpx.Response(status, request=request)
        )

    def test_rate_limit_and_server_errors_are_retryable(self) -> None:
        assert _is_retryable(self._status_error(429))
        assert _is_retryable(self._status_error(503))
        assert _is_retryable(httpx.ConnectError("refused"))

    def test_client_errors_are_not(self) -> None:
        assert not _is_retryable(self._status_error(400))
        assert not _is_retryable(ValueError("bad"))
