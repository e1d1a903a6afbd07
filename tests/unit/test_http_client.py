"""
HTTP 광고 플랫폼 클라이언트 단위 테스트 (httpx.MockTransport 사용).
"""

import json

import httpx
import pytest

from catalog_sync.services.exceptions import ConfigurationError
from catalog_sync.services.platforms.http_client import HttpAdPlatformClient, get_platform_client


def _client(handler) -> HttpAdPlatformClient:
    return HttpAdPlatformClient(
        "GOOGLE_ADS",
        "https://ads.example.com/v1/feeds",
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.unit
class TestHttpAdPlatformClient:
    def test_success_posts_feed_url_with_bearer_token(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["auth"] = request.headers.get("Authorization")
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"feedId": "f-123"})

        result = _client(handler).submit_feed(
            "https://cdn.example.com/feeds/a.csv",
            {"access_token": "tok", "account_id": "acc-9"},
            "Summer Sale",
        )

        assert result.success is True
        assert result.response == {"feedId": "f-123"}
        assert captured["auth"] == "Bearer tok"
        assert captured["body"] == {
            "feedUrl": "https://cdn.example.com/feeds/a.csv",
            "catalogName": "Summer Sale",
            "accountId": "acc-9",
        }

    @pytest.mark.parametrize("status_code", [408, 429, 500, 503])
    def test_transient_status_codes(self, status_code):
        result = _client(lambda request: httpx.Response(status_code, json={"message": "try later"})).submit_feed(
            "u", {}, "c"
        )

        assert result.success is False
        assert result.is_transient is True
        assert result.error_message == "try later"
        assert result.error_code == f"HTTP_{status_code}"

    @pytest.mark.parametrize("status_code", [400, 401, 403, 404])
    def test_permanent_status_codes(self, status_code):
        result = _client(
            lambda request: httpx.Response(status_code, json={"code": "INVALID_TOKEN", "error": "denied"})
        ).submit_feed("u", {}, "c")

        assert result.success is False
        assert result.is_transient is False
        assert result.error_code == "INVALID_TOKEN"
        assert result.error_message == "denied"

    def test_timeout_is_transient(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        result = _client(handler).submit_feed("u", {}, "c")

        assert result.success is False
        assert result.is_transient is True
        assert result.error_code == "TIMEOUT"

    def test_connection_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        result = _client(handler).submit_feed("u", {}, "c")

        assert result.is_transient is True
        assert result.error_code == "NETWORK_ERROR"

    def test_non_json_body_kept_raw(self):
        result = _client(lambda request: httpx.Response(502, text="Bad Gateway")).submit_feed("u", {}, "c")

        assert result.is_transient is True
        assert result.response == {"_raw": "Bad Gateway"}
        assert result.error_message == "Bad Gateway"


@pytest.mark.unit
def test_missing_platform_client_is_configuration_error():
    with pytest.raises(ConfigurationError) as excinfo:
        get_platform_client({}, "TIKTOK_ADS")
    assert excinfo.value.error_code == "CONFIGURATION_ERROR"
