import json
import httpx
import pytest

from crypto_agent.notifications import ResendEmailService, render_text_body


class TestResendEmailService:
    @pytest.mark.asyncio
    async def test_sends_email(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["path"] = request.url.path
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "email_123"})

        service = ResendEmailService(api_key="re_test", transport=httpx.MockTransport(handler))

        sent = await service.send_price_alert("me@example.com", "bitcoin", 54000.0, "low", 55000.0, "alert_1")

        assert sent is True
        assert captured["path"] == "/emails"
        assert captured["auth"] == "Bearer re_test"
        assert captured["body"]["to"] == ["me@example.com"]
        assert "BITCOIN" in captured["body"]["subject"]
        assert "disabled" in captured["body"]["text"]

    @pytest.mark.asyncio
    async def test_unconfigured_returns_false(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("unexpected request")

        service = ResendEmailService(api_key="", transport=httpx.MockTransport(handler))

        assert service.is_configured is False
        assert await service.send_price_alert("me@example.com", "bitcoin", 1.0, "low", 2.0, "a") is False

    @pytest.mark.asyncio
    async def test_api_error_returns_false(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(422, json={"message": "invalid from"}))
        service = ResendEmailService(api_key="re_test", transport=transport)

        assert await service.send_price_alert("me@example.com", "bitcoin", 1.0, "high", 0.5, "a") is False

    @pytest.mark.asyncio
    async def test_network_error_returns_false(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        service = ResendEmailService(api_key="re_test", transport=httpx.MockTransport(handler))

        assert await service.send_price_alert("me@example.com", "bitcoin", 1.0, "high", 0.5, "a") is False


def test_text_body_mentions_threshold():
    body = render_text_body("ethereum", 2500.0, "low", 2600.0, "dropped below", "alert_9")

    assert "ETHEREUM has dropped below your threshold" in body
    assert "$2,600.00" in body
    assert "alert_9" in body
