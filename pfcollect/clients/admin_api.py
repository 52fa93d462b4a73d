from __future__ import annotations

from typing import Any

from pfcollect.clients.http import ApiClient
from pfcollect.config import Settings, load_settings


class AdminApiClient(ApiClient):
    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "AdminApiClient":
        s = settings or load_settings()
        if not s.admin_api_url:
            raise RuntimeError("API_POKEFOLIO_BASE_URL is not configured")
        headers = {"Content-Type": "application/json"}
        if s.admin_api_key is not None:
            headers["X-API-Key"] = s.admin_api_key.get_secret_value()
        return cls(s.admin_api_url, timeout=s.http_timeout_seconds, headers=headers)

    def discord_cleanup(self) -> dict[str, Any]:
        return self.post_json("admin/discord/cleanup", json={})
