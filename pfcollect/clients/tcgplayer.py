from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Sequence
from typing import Any

from pfcollect.clients.http import ApiClient
from pfcollect.config import Settings, load_settings

PRICING_CHUNK_SIZE = 50
_PRODUCT_ID_RE = re.compile(r"/product/(\d+)")


def chunked(items: Sequence[str], size: int = PRICING_CHUNK_SIZE) -> Iterator[list[str]]:
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def product_id_from_url(url: str | None) -> str | None:
    if not url:
        return None
    match = _PRODUCT_ID_RE.search(url)
    return match.group(1) if match else None


class TcgPlayerClient(ApiClient):
    def __init__(
        self,
        base_url: str,
        client_id: str | None,
        client_secret: str | None,
        timeout: float = 30.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(base_url, timeout=timeout, **kwargs)
        self._client_id = client_id
        self._client_secret = client_secret
        self._token: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "TcgPlayerClient":
        s = settings or load_settings()
        secret = s.tcgp_private.get_secret_value() if s.tcgp_private is not None else None
        return cls(s.tcgp_api_url, s.tcgp_public, secret, timeout=s.http_timeout_seconds)

    def authenticate(self) -> str:
        if not self._client_id or not self._client_secret:
            raise RuntimeError("TCGP_PUBLIC / TCGP_PRIVATE are not configured")
        payload = self.post_json(
            "token",
            data={
                "grant_type": "client_credentials",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        token = payload.get("access_token")
        if not token:
            raise RuntimeError("TCGPlayer token response did not include an access_token")
        self._token = str(token)
        return self._token

    def market_prices(self, product_ids: Iterable[str | int]) -> list[dict[str, Any]]:
        """Pricing rows (productId, subTypeName, marketPrice, ...) for up to one chunk of products."""
        token = self._token or self.authenticate()
        ids = ",".join(str(p) for p in product_ids)
        payload = self.get_json(
            f"pricing/product/{ids}", headers={"Authorization": f"Bearer {token}"}
        )
        return list(payload.get("results") or [])

    def resolve_product_id(self, catalog_url: str) -> str | None:
        """Follow one redirect hop of a catalog 'tcgplayer.url' and pull the product id from it."""
        location = self.redirect_location(catalog_url)
        return product_id_from_url(location)
