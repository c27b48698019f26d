from unittest.mock import AsyncMock, patch
import logging

from fastapi.testclient import TestClient

from mdrip_gateway.core.errors import UpstreamFetchError
from mdrip_gateway.fetch.base import FetchOptions, MarkdownResult
from mdrip_gateway.main import app

# Test client
client = TestClient(app)

ENGINE = "mdrip_gateway.fetch.engine.fetch_markdown"


def markdown_result(url: str) -> MarkdownResult:
    return MarkdownResult(
        resolved_url=url,
        status=200,
        content_type="text/markdown",
        source="native",
        markdown_tokens=5,
        content_signal=None,
        markdown=f"# {url}",
    )


async def echo_fetch(url, options):
    return markdown_result(url)


class TestGetApi:
    """Integration tests for GET /api"""

    @patch(ENGINE, new_callable=AsyncMock)
    def test_success(self, mock_fetch):
        mock_fetch.side_effect = echo_fetch
        response = client.get("/api", params={"url": "https://a.test"})

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.json()["markdown"] == "# https://a.test"
        mock_fetch.assert_awaited_once_with(
            "https://a.test",
            FetchOptions(timeout_ms=30000, html_fallback=True, user_agent="mdrip-api/0.1.0"),
        )

    @patch(ENGINE, new_callable=AsyncMock)
    def test_options_forwarded(self, mock_fetch):
        """timeout is not clamped and html_fallback=false disables the fallback"""
        mock_fetch.side_effect = echo_fetch
        response = client.get("/api", params={"url": "https://a.test", "timeout": "500", "html_fallback": "false"})

        assert response.status_code == 200
        options = mock_fetch.await_args.args[1]
        assert options.timeout_ms == 500
        assert options.html_fallback is False

    @patch(ENGINE, new_callable=AsyncMock)
    def test_html_fallback_non_exact_false_keeps_fallback(self, mock_fetch):
        mock_fetch.side_effect = echo_fetch
        client.get("/api", params={"url": "https://a.test", "html_fallback": "FALSE"})
        assert mock_fetch.await_args.args[1].html_fallback is True

    def test_missing_url(self):
        response = client.get("/api")
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required 'url' query parameter"}

    @patch(ENGINE, new_callable=AsyncMock)
    def test_invalid_url(self, mock_fetch):
        response = client.get("/api", params={"url": "not-a-url"})
        assert response.status_code == 400
        assert mock_fetch.await_count == 0

    @patch(ENGINE, new_callable=AsyncMock)
    def test_engine_failure_is_502(self, mock_fetch):
        mock_fetch.side_effect = UpstreamFetchError("HTTP 500 Internal Server Error")
        response = client.get("/api", params={"url": "https://a.test"})

        assert response.status_code == 502
        assert response.json() == {"error": "HTTP 500 Internal Server Error", "url": "https://a.test"}

    @patch(ENGINE, new_callable=AsyncMock)
    def test_trailing_slash(self, mock_fetch):
        mock_fetch.side_effect = echo_fetch
        response = client.get("/api/", params={"url": "https://a.test"})
        assert response.status_code == 200


class TestPostApi:
    """Integration tests for POST /api"""

    @patch(ENGINE, new_callable=AsyncMock)
    def test_single(self, mock_fetch):
        mock_fetch.side_effect = echo_fetch
        response = client.post("/api", json={"url": "https://a.test", "html_fallback": False, "timeout_ms": 9000})

        assert response.status_code == 200
        assert response.json()["url"] == "https://a.test"
        assert "success" not in response.json()
        options = mock_fetch.await_args.args[1]
        assert options == FetchOptions(timeout_ms=9000, html_fallback=False, user_agent="mdrip-api/0.1.0")

    @patch(ENGINE, new_callable=AsyncMock)
    def test_single_failure(self, mock_fetch):
        mock_fetch.side_effect = UpstreamFetchError("Request timed out after 9000ms")
        response = client.post("/api", json={"url": "https://a.test"})
        assert response.status_code == 502
        assert response.json()["url"] == "https://a.test"

    def test_invalid_json(self):
        response = client.post("/api", content=b"{oops", headers={"content-type": "application/json"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid JSON body"}

    def test_missing_shape(self):
        response = client.post("/api", json={"link": "https://a.test"})
        assert response.status_code == 400
        assert response.json() == {"error": "Body must contain 'url' (string) or 'urls' (array)"}

    def test_both_shapes(self):
        response = client.post("/api", json={"url": "https://a.test", "urls": ["https://b.test"]})
        assert response.status_code == 400

    @patch(ENGINE, new_callable=AsyncMock)
    def test_batch_partial_failure_is_200(self, mock_fetch):
        async def fetch(url, options):
            if url == "https://bad.test":
                raise UpstreamFetchError("HTTP 404 Not Found")
            return markdown_result(url)

        mock_fetch.side_effect = fetch
        urls = ["https://a.test", "https://bad.test", "https://c.test"]
        response = client.post("/api", json={"urls": urls})

        assert response.status_code == 200
        results = response.json()["results"]
        assert [r["url"] for r in results] == urls
        assert [r["success"] for r in results] == [True, False, True]
        assert results[1]["error"] == "HTTP 404 Not Found"

    @patch(ENGINE, new_callable=AsyncMock)
    def test_batch_too_large_never_fetches(self, mock_fetch):
        response = client.post("/api", json={"urls": [f"https://{i}.test" for i in range(11)]})
        assert response.status_code == 400
        assert response.json() == {"error": "urls must contain 1-10 URLs"}
        assert mock_fetch.await_count == 0

    @patch(ENGINE, new_callable=AsyncMock)
    def test_empty_batch_never_fetches(self, mock_fetch):
        response = client.post("/api", json={"urls": []})
        assert response.status_code == 400
        assert mock_fetch.await_count == 0


class TestApiSurface:

    def test_preflight(self):
        response = client.options("/api")
        assert response.status_code == 204
        assert response.content == b""
        assert response.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
        assert response.headers["access-control-allow-headers"] == "Content-Type"

    def test_method_not_allowed(self):
        response = client.put("/api", json={"url": "https://a.test"})
        assert response.status_code == 405
        assert response.json() == {"error": "Method not allowed"}

    def test_unknown_path(self):
        response = client.get("/nope")
        assert response.status_code == 404
        assert response.text == "Not found"
        assert response.headers["content-type"].startswith("text/plain")

    def test_root_descriptor(self):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "mdrip-mcp"
        assert data["endpoints"] == {"mcp": "/mcp", "sse": "/sse", "api": "/api"}
        assert data["tools"] == ["fetch_markdown", "batch_fetch_markdown"]

    def test_health(self):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestRateLimiting:

    @patch(ENGINE, new_callable=AsyncMock)
    def test_api_scope_exhausted(self, mock_fetch, limit_scope):
        mock_fetch.side_effect = echo_fetch
        limit_scope("api", 1)

        assert client.get("/api", params={"url": "https://a.test"}).status_code == 200
        response = client.get("/api", params={"url": "https://a.test"})

        assert response.status_code == 429
        assert response.headers["retry-after"] == "60"
        assert response.json() == {"error": "Rate limit exceeded", "scope": "api", "retryAfterSeconds": 60}
        assert mock_fetch.await_count == 1

    def test_rate_limit_checked_before_validation(self, limit_scope):
        limit_scope("api", 0)
        response = client.get("/api")
        assert response.status_code == 429

    def test_preflight_and_root_not_limited(self, limit_scope):
        limit_scope("api", 0)
        assert client.options("/api").status_code == 204
        assert client.get("/").status_code == 200

    @patch(ENGINE, new_callable=AsyncMock)
    def test_batch_scope(self, mock_fetch, limit_scope):
        """Batch bodies are charged to api-batch as well; single calls are not"""
        mock_fetch.side_effect = echo_fetch
        limit_scope("api-batch", 1)

        assert client.post("/api", json={"urls": ["https://a.test"]}).status_code == 200
        denied = client.post("/api", json={"urls": ["https://a.test"]})
        assert denied.status_code == 429
        assert denied.json()["scope"] == "api-batch"

        assert client.post("/api", json={"url": "https://a.test"}).status_code == 200
        assert mock_fetch.await_count == 2

    @patch(ENGINE, new_callable=AsyncMock)
    def test_callers_are_isolated(self, mock_fetch, limit_scope):
        mock_fetch.side_effect = echo_fetch
        limit_scope("api", 1)

        first = {"x-api-key": "alice"}
        second = {"x-api-key": "bob"}
        assert client.get("/api", params={"url": "https://a.test"}, headers=first).status_code == 200
        assert client.get("/api", params={"url": "https://a.test"}, headers=first).status_code == 429
        assert client.get("/api", params={"url": "https://a.test"}, headers=second).status_code == 200

    def test_transport_scope_denied_before_transport(self, limit_scope):
        limit_scope("transport", 0)
        for path in ("/mcp", "/mcp/", "/sse", "/sse/messages/"):
            response = client.post(path, json={})
            assert response.status_code == 429
            assert response.json()["scope"] == "transport"
            assert response.headers["retry-after"] == "60"

    @patch(ENGINE, new_callable=AsyncMock)
    def test_transport_budget_does_not_affect_api(self, mock_fetch, limit_scope):
        mock_fetch.side_effect = echo_fetch
        limit_scope("transport", 0)
        assert client.post("/mcp", json={}).status_code == 429
        assert client.get("/api", params={"url": "https://a.test"}).status_code == 200

    def test_denial_log_omits_credentials(self, limit_scope, caplog):
        """Only the identity source is logged, never the token or key itself"""
        limit_scope("api", 0)
        with caplog.at_level(logging.WARNING):
            auth = client.get("/api", params={"url": "https://a.test"}, headers={"authorization": "Bearer sk-SECRET-TOKEN"})
            key = client.get("/api", params={"url": "https://a.test"}, headers={"x-api-key": "team-secret-key"})

        assert auth.status_code == 429
        assert key.status_code == 429
        assert "sk-SECRET-TOKEN" not in caplog.text
        assert "team-secret-key" not in caplog.text
        assert "Denied auth caller for scope api" in caplog.text
        assert "Denied key caller for scope api" in caplog.text

    @patch(ENGINE, new_callable=AsyncMock)
    def test_oversized_timeout_is_400(self, mock_fetch):
        response = client.get("/api", params={"url": "https://a.test", "timeout": "9" * 5000})
        assert response.status_code == 400
        assert mock_fetch.await_count == 0
