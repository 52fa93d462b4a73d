from __future__ import annotations

from typing import Any

from pfcollect.clients.http import ApiClient
from pfcollect.config import Settings, load_settings


class FxRatesClient(ApiClient):
    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "FxRatesClient":
        s = settings or load_settings()
        return cls(s.fx_rates_url, timeout=s.http_timeout_seconds)

    def latest_usd(self) -> dict[str, Any]:
        payload = self.get_json("")
        if not payload.get("success") or payload.get("base") != "USD":
            raise ValueError("Invalid response or base currency is not USD")
        return payload
