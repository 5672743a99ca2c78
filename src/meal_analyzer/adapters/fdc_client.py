"""USDA FoodData Central API client."""

from dataclasses import dataclass
from typing import Protocol

import httpx

# Branded entries describe packaged products, not the generic foods detectors name
GENERIC_DATA_TYPES = ("Foundation", "SR Legacy", "Survey (FNDDS)")


class FdcClient(Protocol):
    """Interface for FoodData Central API interactions."""

    async def search_foods(self, query: str, page_size: int = 10) -> dict[str, object]:
        """Search foods by query and return raw API data."""

    async def get_food(self, fdc_id: int) -> dict[str, object]:
        """Fetch a food by FDC id and return raw API data."""


@dataclass
class HttpxFdcClient(FdcClient):
    """FoodData Central REST client on a shared httpx session."""

    api_key: str
    base_url: str
    http_client: httpx.AsyncClient
    timeout: float = 15.0
    data_types: tuple[str, ...] = GENERIC_DATA_TYPES

    @classmethod
    def create(
        cls, api_key: str, base_url: str, timeout: float = 15.0
    ) -> "HttpxFdcClient":
        return cls(
            api_key=api_key,
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(),
            timeout=timeout,
        )

    async def search_foods(self, query: str, page_size: int = 10) -> dict[str, object]:
        """First page of foods matching ``query`` within ``data_types``."""
        return await self._request(
            "POST",
            "/foods/search",
            body={
                "query": query,
                "dataType": list(self.data_types),
                "pageSize": page_size,
                "pageNumber": 1,
            },
        )

    async def get_food(self, fdc_id: int) -> dict[str, object]:
        return await self._request("GET", f"/food/{fdc_id}", params={"format": "full"})

    async def close(self) -> None:
        await self.http_client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        body: dict[str, object] | None = None,
    ) -> dict[str, object]:
        response = await self.http_client.request(
            method,
            f"{self.base_url}{path}",
            params={"api_key": self.api_key, **(params or {})},
            json=body,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()
