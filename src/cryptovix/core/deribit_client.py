"""
Deribit Venue Client

Fetches the BTC option book summary, the BTC index price and the DVOL
volatility index from Deribit's public API.

DVOL is published in percentage points (e.g. 52.4) and is used directly as
Deribit's index signal.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, List

import httpx
from loguru import logger

from cryptovix.core.venue_client import VenueClient
from cryptovix.core.venue_schemas import (
    DeribitBookSummary,
    DeribitEnvelope,
    DeribitIndexPrice,
    DeribitVolatilityIndexData,
    validate_records,
)
from cryptovix.utils.venue_errors import VenueFetchError


DERIBIT_API = "https://www.deribit.com/api/v2"

# DVOL candle resolution (seconds) and lookback window
DVOL_RESOLUTION = 3600
DVOL_LOOKBACK = timedelta(hours=1)


class DeribitClient(VenueClient):
    """Deribit public API client."""

    venue = "deribit"

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str = DERIBIT_API,
        timeout: float = 10.0,
    ):
        super().__init__(http, base_url, timeout)

    def _unwrap(self, payload: Any) -> Any:
        envelope = DeribitEnvelope.model_validate(payload)
        if envelope.error:
            raise VenueFetchError(
                f"Deribit error: {envelope.error.get('message', envelope.error)}",
                error_type="http_status",
                venue=self.venue,
            )
        return envelope.result

    async def fetch_option_chain(self, currency: str = "BTC") -> List[DeribitBookSummary]:
        """
        Fetch the option book summary for a currency.

        Args:
            currency: Base currency (BTC)

        Returns:
            Validated book summary rows, empty list on failure
        """
        try:
            result = await self._get_result(
                "public/get_book_summary_by_currency",
                {"currency": currency, "kind": "option"},
            )
        except VenueFetchError:
            return []

        rows = validate_records(DeribitBookSummary, result or [], self.venue)
        logger.debug(f"Deribit: {len(rows)} option summaries for {currency}")
        return rows

    async def fetch_spot_price(self, index_name: str = "btc_usd") -> float:
        """
        Fetch the Deribit index price.

        Returns:
            Index price in USD, 0.0 on failure
        """
        try:
            result = await self._get_result("public/get_index_price", {"index_name": index_name})
            return DeribitIndexPrice.model_validate(result).index_price
        except VenueFetchError:
            return 0.0
        except Exception as e:
            logger.warning(f"Deribit index price rejected: {e}")
            return 0.0

    async def fetch_volatility_index(self, currency: str = "BTC") -> float:
        """
        Fetch the latest DVOL value (percentage points).

        Uses the close of the last hourly candle within the lookback window.

        Returns:
            DVOL value, 0.0 on failure or when no candle is available
        """
        end = datetime.now(timezone.utc)
        start = end - DVOL_LOOKBACK
        params = {
            "currency": currency,
            "resolution": DVOL_RESOLUTION,
            "start_timestamp": int(start.timestamp() * 1000),
            "end_timestamp": int(end.timestamp() * 1000),
        }

        try:
            result = await self._get_result("public/get_volatility_index_data", params)
            data = DeribitVolatilityIndexData.model_validate(result)
        except VenueFetchError:
            return 0.0
        except Exception as e:
            logger.warning(f"Deribit DVOL response rejected: {e}")
            return 0.0

        close = data.last_close
        if close is None:
            logger.warning(f"Deribit DVOL returned no candle data for {currency}")
            return 0.0

        return close
