import httpx
from typing import Optional
import structlog

from .config import settings, ThresholdType
from .error_handling import EmailDeliveryFailure

logger = structlog.get_logger()

class ResendEmailService:
    """Price alert emails through the Resend HTTP API"""

    def __init__(self, api_key: Optional[str] = None, from_email: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.from_email = from_email or settings.ALERT_FROM_EMAIL
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def send_price_alert(self, to: str, symbol: str, price: float, threshold_type: str,
                               threshold_value: float, alert_id: str) -> bool:
        """Send a triggered-alert email. Returns False instead of raising."""
        if not self.is_configured:
            logger.warning("RESEND_API_KEY not configured, skipping alert email", alert_id=alert_id)
            return False

        direction = "risen above" if threshold_type == ThresholdType.HIGH else "dropped below"
        subject = f"{symbol.upper()} Price Alert - Price has {direction} ${threshold_value:,.2f}"
        payload = {
            "from": self.from_email,
            "to": [to],
            "subject": subject,
            "html": render_html_body(symbol, price, threshold_type, threshold_value, direction, alert_id),
            "text": render_text_body(symbol, price, threshold_type, threshold_value, direction, alert_id),
        }

        try:
            email_id = await self._post_email(payload)
            logger.info("Alert email sent", alert_id=alert_id, email_id=email_id, to=to)
            return True
        except EmailDeliveryFailure as e:
            logger.error("Failed to send alert email", alert_id=alert_id, error=str(e))
            return False

    async def _post_email(self, payload: dict) -> Optional[str]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(base_url=settings.RESEND_BASE_URL,
                                         timeout=settings.HTTP_TIMEOUT_SECONDS,
                                         transport=self.transport) as client:
                response = await client.post("/emails", json=payload, headers=headers)
                response.raise_for_status()
                return response.json().get("id")
        except httpx.HTTPStatusError as e:
            raise EmailDeliveryFailure(f"Resend API error {e.response.status_code}") from e
        except (httpx.RequestError, ValueError) as e:
            raise EmailDeliveryFailure(str(e)) from e

def render_text_body(symbol: str, price: float, threshold_type: str, threshold_value: float,
                     direction: str, alert_id: str) -> str:
    return (
        f"PRICE ALERT TRIGGERED\n\n"
        f"{symbol.upper()} has {direction} your threshold.\n\n"
        f"Current price: ${price:,.2f}\n"
        f"Your {threshold_type} threshold: ${threshold_value:,.2f}\n"
        f"Alert ID: {alert_id}\n\n"
        f"This alert has been automatically disabled after triggering. "
        f"Set up a new alert to keep monitoring {symbol.upper()}.\n\n"
        f"This is not financial advice."
    )

def render_html_body(symbol: str, price: float, threshold_type: str, threshold_value: float,
                     direction: str, alert_id: str) -> str:
    color = "#28a745" if threshold_type == ThresholdType.HIGH else "#dc3545"
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Price Alert Triggered</title></head>
<body style="font-family: -apple-system, 'Segoe UI', Roboto, sans-serif;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1>Alert Triggered!</h1>
    <p>{symbol.upper()} has {direction} your threshold.</p>
    <div style="padding: 20px; background: #f8f9fa; border-left: 5px solid {color};">
      <p>Current price: <strong style="color: {color};">${price:,.2f}</strong></p>
      <p>Your {threshold_type} threshold: <strong>${threshold_value:,.2f}</strong></p>
    </div>
    <p>This alert has been automatically disabled after triggering.</p>
    <p style="color: #666; font-size: 12px;">Alert ID: {alert_id}. This is not financial advice.</p>
  </div>
</body>
</html>"""

# Global email service instance
email_service = ResendEmailService()
