"""
Email gateway client for sending emails via HTTP gateway.

Uses HMAC-SHA256 signature for request authentication. Attachments travel
base64-encoded inside the signed JSON payload.
"""

import base64
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass

import requests

logger = logging.getLogger(__name__)


class EmailGatewayError(Exception):
    """Raised when email gateway request fails."""


@dataclass(frozen=True)
class EmailAttachment:
    """A file sent along with an email."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    def to_payload(self) -> dict:
        return {
            "filename": self.filename,
            "content_type": self.content_type,
            "content": base64.b64encode(self.content).decode("ascii"),
        }


class EmailGatewayClient:
    """Send emails via HTTP gateway with HMAC signature verification."""

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str, timeout_seconds: int = 10):
        """
        Initialize with gateway credentials.

        Args:
            gateway_url: Full URL to the email gateway endpoint
            api_key: API key for X-API-Key header
            hmac_secret: Secret for HMAC-SHA256 signature
            timeout_seconds: Per-request timeout

        Raises:
            ValueError: If any credential is empty
        """
        if not gateway_url:
            raise ValueError("gateway_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        if not hmac_secret:
            raise ValueError("hmac_secret is required")

        self.gateway_url = gateway_url
        self.api_key = api_key
        self.hmac_secret = hmac_secret
        self.timeout_seconds = timeout_seconds

    def _sign_and_send(self, payload: dict) -> None:
        """
        Sign payload with HMAC and send to gateway.

        Raises:
            EmailGatewayError: On any failure, including timeout
        """
        payload_json = json.dumps(payload, separators=(",", ":"))

        signature = hmac.new(
            self.hmac_secret.encode("utf-8"),
            payload_json.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "X-Signature": signature,
        }

        try:
            response = requests.post(
                self.gateway_url,
                data=payload_json,
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except (requests.exceptions.RequestException, ConnectionError) as e:
            logger.error(f"Email gateway connection failed: {e}")
            raise EmailGatewayError(f"Connection failed: {e}")

        try:
            response_data = response.json()
        except (json.JSONDecodeError, ValueError):
            logger.error(f"Email gateway returned invalid JSON: {response.text}")
            raise EmailGatewayError("Invalid response from gateway")

        if response.status_code != 200 or not response_data.get("success"):
            error_msg = response_data.get("message", "Unknown error")
            logger.error(f"Email gateway error: {error_msg}")
            raise EmailGatewayError(f"Gateway error: {error_msg}")

    def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        cc: list[str] | None = None,
        attachments: list[EmailAttachment] | None = None,
        sender: str = "system",
    ) -> None:
        """
        Send an HTML email via gateway.

        Args:
            to: Recipient email address
            subject: Email subject line
            html_body: HTML email body
            cc: Additional recipients copied on the email
            attachments: Files to attach
            sender: Sender identity - "billing" or "system" (default: "system")

        Raises:
            ValueError: If sender is invalid
            EmailGatewayError: On gateway failure
        """
        if sender not in ("billing", "system"):
            raise ValueError(f"sender must be 'billing' or 'system', got '{sender}'")

        payload = {
            "type": "custom",
            "email": to,
            "cc": [address for address in (cc or []) if address],
            "subject": subject,
            "html": html_body,
            "sender": sender,
        }
        if attachments:
            payload["attachments"] = [a.to_payload() for a in attachments]

        self._sign_and_send(payload)
        logger.info(f"Email sent to {to}: {subject}")
