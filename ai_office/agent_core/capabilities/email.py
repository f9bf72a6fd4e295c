from __future__ import annotations

"""E-mail send capability.

E-mail delivery is an external collaborator: the core only needs
``send(to, subject, body)``. ``HttpEmailRelay`` posts messages to an HTTP relay
(any transactional mail service fronted by a JSON endpoint).
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, body: str) -> Dict[str, Any]:
        """Deliver one message; raise on failure."""
        ...


@dataclass(frozen=True)
class HttpEmailRelay:
    """Send e-mail through an HTTP relay.

    Attributes:
        url: relay endpoint receiving ``{"from", "to", "subject", "body"}``.
        sender: From address.
        client: optional shared ``httpx.AsyncClient``; a short-lived client is
            created per message otherwise.
    """

    url: str
    sender: str
    timeout_seconds: float = 10.0
    client: Optional[httpx.AsyncClient] = None

    async def send(self, to: str, subject: str, body: str) -> Dict[str, Any]:
        payload = {"from": self.sender, "to": to, "subject": subject, "body": body}
        if self.client is not None:
            response = await self.client.post(self.url, json=payload, timeout=self.timeout_seconds)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.url, json=payload)
        response.raise_for_status()
        logger.info(f"E-mail to {to} accepted by relay (status={response.status_code})")
        return {"to": to, "status_code": response.status_code}
