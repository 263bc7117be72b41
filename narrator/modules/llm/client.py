from __future__ import annotations

import logging
import time

import httpx

from narrator.config import settings
from narrator.modules.llm.base import ModelProxy
from narrator.modules.llm.errors import ModelTransportError
from narrator.modules.llm.parsers import sanitize_raw_snippet, transport_error_kind

logger = logging.getLogger(__name__)


class ModelProxyClient(ModelProxy):
    name = "proxy"

    def __init__(
        self,
        url: str,
        *,
        token: str = "",
        timeout_s: float = 60.0,
        connect_timeout_s: float | None = None,
    ):
        self.url = url
        self.token = token
        self.timeout_s = float(timeout_s)
        self.connect_timeout_s = float(connect_timeout_s) if connect_timeout_s is not None else None

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["authorization"] = f"Bearer {self.token}"
        return headers

    async def generate(self, payload: dict) -> dict:
        started = time.perf_counter()
        timeout = httpx.Timeout(
            timeout=self.timeout_s,
            connect=self.connect_timeout_s if self.connect_timeout_s is not None else self.timeout_s,
        )
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(self.url, headers=self._headers(), json=payload)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise ModelTransportError(
                f"model proxy returned HTTP {status}",
                error_kind=transport_error_kind(exc),
                status_code=status,
                raw_snippet=sanitize_raw_snippet(exc.response.text),
            ) from exc
        except (httpx.HTTPError, TimeoutError) as exc:
            raise ModelTransportError(
                f"model proxy request failed: {exc.__class__.__name__}",
                error_kind=transport_error_kind(exc),
            ) from exc
        except ValueError as exc:
            raise ModelTransportError(
                "model proxy returned a non-json body",
                error_kind=transport_error_kind(exc),
            ) from exc

        logger.debug(
            "model proxy call ok model=%s latency_ms=%d",
            payload.get("modelName"),
            int((time.perf_counter() - started) * 1000),
        )
        return data if isinstance(data, dict) else {"raw": data}


def build_model_proxy() -> ModelProxy:
    provider = (settings.llm_provider or "").strip().lower()
    if provider == "proxy":
        return ModelProxyClient(
            settings.llm_proxy_url,
            token=settings.llm_proxy_token,
            timeout_s=settings.llm_timeout_s,
            connect_timeout_s=settings.llm_connect_timeout_s,
        )
    from narrator.modules.llm.providers.fake import FakeModelProxy

    return FakeModelProxy()
