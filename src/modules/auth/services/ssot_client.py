"""
Client for the SSOT authentication service (api.qolae.com).

Every call has an explicit timeout and is retried once, after a short random
delay, when the connection fails or the gateway answers 502/503/504. When the
retries run out `UpstreamUnavailableError` is raised; any other answer,
including 4xx, is returned to the caller as an `SsotResponse`.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from core.config import settings
from core.exceptions import UpstreamUnavailableError
from core.logging_config import mask_token

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {502, 503, 504}
SERVICE_NAME = "Authentication service"


@dataclass
class SsotResponse:
    status_code: int
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return 200 <= self.status_code < 300 and bool(self.data.get("success"))

    @property
    def error(self) -> Optional[str]:
        return self.data.get("error")

    @property
    def reader(self) -> Dict[str, Any]:
        return self.data.get("reader") or {}

    @property
    def access_token(self) -> Optional[str]:
        return self.data.get("accessToken")


class SsotClient:

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        jitter: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = (base_url or settings.SSOT_BASE_URL).rstrip("/")
        self.timeout = settings.UPSTREAM_TIMEOUT_SECONDS if timeout is None else timeout
        self.max_retries = settings.UPSTREAM_MAX_RETRIES if max_retries is None else max_retries
        self.jitter = settings.UPSTREAM_RETRY_JITTER_SECONDS if jitter is None else jitter
        self.transport = transport
        self._sleep = sleep

    async def post(self, path: str, payload: Dict[str, Any], token: Optional[str] = None) -> SsotResponse:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        reason = ""

        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout,
                                     transport=self.transport) as client:
            for attempt in range(self.max_retries + 1):
                if attempt:
                    await self._sleep(random.uniform(0, self.jitter))
                    logger.info("[SSOT] Retrying %s (attempt %d)", path, attempt + 1)
                try:
                    response = await client.post(path, json=payload, headers=headers)
                except httpx.TransportError as e:
                    reason = f"{type(e).__name__}: {e}"
                    logger.warning("[SSOT] %s failed: %s", path, reason)
                    continue

                if response.status_code in RETRYABLE_STATUS:
                    reason = f"HTTP {response.status_code}"
                    logger.warning("[SSOT] %s answered %s", path, response.status_code)
                    continue

                return SsotResponse(response.status_code, self._json(response))

        logger.error("[SSOT] %s unavailable after %d attempts (token %s)",
                     path, self.max_retries + 1, mask_token(token or ""))
        raise UpstreamUnavailableError(SERVICE_NAME, reason)

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    # ------------------------------------------------------------------
    # Reader endpoints
    # ------------------------------------------------------------------
    async def request_token(self, email: str, reader_pin: str, ip_address: Optional[str]) -> SsotResponse:
        return await self.post("/auth/readers/requestToken", {
            "readerEmail": email,
            "readerPin": reader_pin,
            "source": "readers-portal",
            "ip": ip_address,
        })

    async def validate_session(self, token: str) -> SsotResponse:
        return await self.post("/auth/readers/session/validate", {"token": token})

    async def request_code(self, token: str, ip_address: Optional[str], user_agent: Optional[str]) -> SsotResponse:
        return await self.post("/auth/readers/2fa/requestCode",
                               {"ipAddress": ip_address, "userAgent": user_agent}, token=token)

    async def verify_code(self, token: str, code: str, ip_address: Optional[str],
                          user_agent: Optional[str]) -> SsotResponse:
        return await self.post("/auth/readers/2fa/verifyCode", {
            "verificationCode": code,
            "ipAddress": ip_address,
            "userAgent": user_agent,
        }, token=token)

    async def password_setup(self, token: str, password: str, ip_address: Optional[str],
                             user_agent: Optional[str]) -> SsotResponse:
        return await self.post("/auth/readers/passwordSetup", {
            "password": password,
            "ipAddress": ip_address,
            "userAgent": user_agent,
        }, token=token)

    async def password_verify(self, token: str, password: str, ip_address: Optional[str],
                              user_agent: Optional[str]) -> SsotResponse:
        return await self.post("/auth/readers/passwordVerify", {
            "password": password,
            "ipAddress": ip_address,
            "userAgent": user_agent,
        }, token=token)


def get_ssot_client() -> SsotClient:
    return SsotClient()
