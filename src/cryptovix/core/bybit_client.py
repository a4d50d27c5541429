"""
Bybit Venue Client

Fetches BTC option tickers and instruments-info from Bybit's v5 market API.

Key points:
- Ticker IVs (markIv, bidIv, askIv) are fractions (0.48 == 48%)
- instruments-info is paginated through nextPageCursor
- fetch_instruments() is the instruments cache loader: it raises on failure
  so the cache can keep serving its previous mapping
"""

from typing import Any, Dict, List

import httpx
from loguru import logger

from cryptovix.core.instrument_parser import InstrumentParseError, parse_instrument
from cryptovix.core.models import InstrumentMetadata, OptionType
from cryptovix.core.venue_client import VenueClient
from cryptovix.core.venue_schemas import (
    BybitEnvelope,
    BybitInstrument,
    BybitListResult,
    BybitTicker,
    validate_records,
)
from cryptovix.utils.venue_errors import VenueFetchError


BYBIT_API = "https://api.bybit.com/v5/market"


class BybitClient(VenueClient):
    """Bybit v5 market API client."""

    venue = "bybit"

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str = BYBIT_API,
        timeout: float = 10.0,
        page_limit: int = 1000,
        max_pages: int = 10,
    ):
        super().__init__(http, base_url, timeout)
        self.page_limit = page_limit
        self.max_pages = max_pages

    def _unwrap(self, payload: Any) -> BybitListResult:
        envelope = BybitEnvelope.model_validate(payload)
        if envelope.ret_code != 0:
            raise VenueFetchError(
                f"Bybit retCode={envelope.ret_code}: {envelope.ret_msg}",
                error_type="rate_limit" if envelope.ret_code == 10006 else "http_status",
                venue=self.venue,
            )
        return BybitListResult.model_validate(envelope.result or {})

    async def fetch_option_chain(self, base_coin: str = "BTC") -> List[BybitTicker]:
        """
        Fetch all option tickers for a base coin.

        Returns:
            Validated tickers, empty list on failure
        """
        try:
            result = await self._get_result(
                "tickers",
                {"category": "option", "baseCoin": base_coin},
            )
        except VenueFetchError:
            return []

        tickers = validate_records(BybitTicker, result.items, self.venue)
        logger.debug(f"Bybit: {len(tickers)} option tickers for {base_coin}")
        return tickers

    async def fetch_instruments(self, base_coin: str = "BTC") -> Dict[str, InstrumentMetadata]:
        """
        Fetch option instrument metadata, following pagination.

        Args:
            base_coin: Base coin (BTC)

        Returns:
            Mapping of symbol -> InstrumentMetadata

        Raises:
            VenueFetchError: If any page fails
        """
        instruments: List[BybitInstrument] = []
        cursor = ""

        for _ in range(self.max_pages):
            params = {"category": "option", "baseCoin": base_coin, "limit": self.page_limit}
            if cursor:
                params["cursor"] = cursor

            page = await self._get_result("instruments-info", params)
            instruments.extend(validate_records(BybitInstrument, page.items, self.venue))

            cursor = page.next_page_cursor
            if not cursor or not page.items:
                break
        else:
            logger.warning(f"Bybit instruments-info still paginating after {self.max_pages} pages")

        metadata: Dict[str, InstrumentMetadata] = {}
        for inst in instruments:
            try:
                strike = parse_instrument(inst.symbol).strike
            except InstrumentParseError:
                logger.debug(f"Bybit: skipping instrument with unparseable symbol {inst.symbol}")
                continue

            metadata[inst.symbol] = InstrumentMetadata(
                symbol=inst.symbol,
                strike=strike,
                expiry=inst.expiry,
                option_type=OptionType(inst.options_type),
            )

        return metadata
