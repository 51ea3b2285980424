"""ESIOS (Red Eléctrica) PVPC price provider.

API docs: https://api.esios.ree.es/
Indicator 1001 is the PVPC retail price in EUR/MWh, one value per hour.
A personal token (sent as ``x-api-key``) is required.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta, tzinfo
from typing import Any

import httpx

from power_scheduler.config.schema import PriceSourceConfig
from power_scheduler.exceptions import PriceUnavailableError
from power_scheduler.pricing.base import DailyPrices, HourlyPrice, PriceProvider
from power_scheduler.timezone_utils import local_now

logger = logging.getLogger(__name__)


class EsiosProvider(PriceProvider):
    """ESIOS REST API price provider for the peninsula PVPC tariff."""

    def __init__(
        self,
        config: PriceSourceConfig,
        tz: tzinfo,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._tz = tz
        if not config.api_token:
            logger.warning("ESIOS api_token not configured; price fetches will fail")
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers={
                "Accept": "application/json; application/vnd.esios-api-v1+json",
                "x-api-key": config.api_token,
            },
            timeout=config.timeout_seconds,
            transport=transport,
        )

    async def fetch_today(self) -> DailyPrices:
        return await self.fetch_for_date(local_now(self._tz).date())

    async def fetch_tomorrow(self) -> DailyPrices:
        """Tomorrow's prices, published by REE around 20:15 local time."""
        return await self.fetch_for_date(local_now(self._tz).date() + timedelta(days=1))

    async def fetch_for_date(self, day: date) -> DailyPrices:
        if not self._config.api_token:
            raise PriceUnavailableError(day, "ESIOS api_token is not configured")

        try:
            resp = await self._client.get(
                f"/indicators/{self._config.indicator}",
                params={
                    "start_date": f"{day.isoformat()}T00:00:00",
                    "end_date": f"{day.isoformat()}T23:59:59",
                    "geo_ids": self._config.geo_id,
                },
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "ESIOS returned %d for %s: %s",
                e.response.status_code, day, e.response.text[:200],
            )
            raise PriceUnavailableError(day, f"ESIOS returned status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.warning("ESIOS request for %s failed: %s", day, e)
            raise PriceUnavailableError(day, f"ESIOS request failed: {e}") from e
        except ValueError as e:
            raise PriceUnavailableError(day, "ESIOS returned a malformed payload") from e

        prices = self._parse_prices(data, self._config.geo_id)
        if prices and len(prices) != 24:
            logger.warning("Expected 24 prices for %s, got %d", day, len(prices))
        logger.info("ESIOS prices fetched for %s: %d hours", day, len(prices))
        return DailyPrices(date=day, prices=prices)

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _parse_prices(data: Any, geo_id: int) -> list[HourlyPrice]:
        """Parse an ESIOS indicator payload into hourly EUR/kWh prices.

        Values without a geo_id are accepted; values for other geo_ids are
        dropped. On the autumn DST change an hour appears twice and only the
        first value is kept.
        """
        try:
            values = data["indicator"]["values"]
        except (KeyError, TypeError) as e:
            raise PriceUnavailableError(message="ESIOS payload has no indicator values") from e

        by_hour: dict[int, HourlyPrice] = {}
        for entry in values:
            entry_geo = entry.get("geo_id")
            if entry_geo is not None and entry_geo != geo_id:
                continue
            hour = _extract_hour(entry.get("datetime", ""))
            if hour is None or hour in by_hour:
                continue
            try:
                value = float(entry["value"])
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping ESIOS value without a numeric price: %r", entry)
                continue
            by_hour[hour] = HourlyPrice(hour=hour, price=value / 1000.0)

        return [by_hour[h] for h in sorted(by_hour)]


def _extract_hour(iso_datetime: str) -> int | None:
    """Extract the local hour from e.g. ``2024-01-15T14:00:00.000+01:00``."""
    try:
        time_part = iso_datetime.split("T", 1)[1]
        hour = int(time_part.split(":", 1)[0])
    except (IndexError, ValueError):
        return None
    return hour if 0 <= hour <= 23 else None
