from __future__ import annotations

import math
from typing import Any

from pfcollect.clients.http import ApiClient
from pfcollect.config import Settings, load_settings

PAGE_SIZE = 250


class CardCatalogClient(ApiClient):
    """pokemontcg.io v2 catalog: sets and paginated cards."""

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "CardCatalogClient":
        s = settings or load_settings()
        headers = {}
        if s.ptcg_api_key is not None:
            headers["X-Api-Key"] = s.ptcg_api_key.get_secret_value()
        return cls(s.ptcg_api_url, timeout=s.http_timeout_seconds, headers=headers)

    def get_sets(self) -> list[dict[str, Any]]:
        return list(self.get_json("sets").get("data") or [])

    def card_page(self, set_id: str, page: int = 1) -> dict[str, Any]:
        return self.get_json(
            "cards", params={"q": f"set.id:{set_id}", "page": page, "pageSize": PAGE_SIZE}
        )

    @staticmethod
    def total_pages(payload: dict[str, Any]) -> int:
        return max(1, math.ceil(int(payload.get("totalCount") or 0) / PAGE_SIZE))
