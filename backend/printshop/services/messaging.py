# Overview: WhatsApp gateway client used by the notification worker.

from __future__ import annotations

import re
from dataclasses import dataclass

import httpx
from flask import current_app

from .errors import NotificationError


class MessagingError(NotificationError):
    """
    Delivery failed.

    http_status is set only when the gateway answered; transport failures
    (DNS, timeout, refused connection, missing configuration) leave it None.
    """

    def __init__(self, message: str, *, http_status: int | None = None, response_text: str | None = None):
        super().__init__(message)
        self.http_status = http_status
        self.response_text = response_text


@dataclass(frozen=True)
class DeliveryResult:
    http_status: int
    body: str


def normalize_phone(phone: str | None) -> str:
    return re.sub(r"\D", "", phone or "")


class WhatsAppProvider:
    """
    Sends templated messages through a WhatsApp HTTP gateway.

    POST {base_url}/send-message  {"phone": "...", "message": "..."}
    Authorization: Bearer <token>
    """

    def __init__(
        self,
        base_url: str | None,
        token: str | None,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.token = token
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_config(cls, config) -> "WhatsAppProvider":
        return cls(
            config.get("WHATSAPP_API_URL"),
            config.get("WHATSAPP_API_TOKEN"),
            timeout=config.get("WHATSAPP_TIMEOUT_SECONDS", 10.0),
        )

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.token)

    def send(self, recipient: str, message: str) -> DeliveryResult:
        if not self.configured:
            raise MessagingError("Messaging provider not configured")

        phone = normalize_phone(recipient)
        if not phone:
            raise MessagingError("Recipient has no phone number")

        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
                response = client.post(
                    "/send-message",
                    json={"phone": phone, "message": message},
                    headers={"Authorization": f"Bearer {self.token}"},
                )
        except httpx.HTTPError as exc:
            raise MessagingError(f"Gateway unreachable: {exc}") from exc

        if response.is_error:
            raise MessagingError(
                f"Gateway returned {response.status_code}",
                http_status=response.status_code,
                response_text=response.text,
            )

        return DeliveryResult(http_status=response.status_code, body=response.text)


def get_provider():
    """
    Provider for the current app.

    An instance registered under app.extensions["messaging_provider"] wins;
    otherwise one is built from config.
    """
    provider = current_app.extensions.get("messaging_provider")
    if provider is not None:
        return provider
    return WhatsAppProvider.from_config(current_app.config)
