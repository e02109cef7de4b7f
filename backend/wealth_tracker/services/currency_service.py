from typing import Dict, Iterable
import logging

from .http_client import HttpProvider
from .results import ProviderError

logger = logging.getLogger(__name__)


class CurrencyService(HttpProvider):
    """Service for latest exchange rates (exchangerate-api.com free tier)"""

    name = "ExchangeRate API"

    # Exchange rate API (free tier)
    API_URL = "https://api.exchangerate-api.com/v4/latest/{}"

    async def get_latest_rates(self, base: str) -> Dict[str, float]:
        """
        Get all rates quoted against ``base`` (1 base = rate units of X).
        Raises ProviderError if the payload has no rates.
        """
        data = await self._get_json(self.API_URL.format(base))
        rates = data.get("rates") if isinstance(data, dict) else None
        if not rates:
            raise ProviderError(f"{self.name}: no rates in response for {base}")
        return rates

    async def get_exchange_rate(self, from_currency: str, to_currency: str) -> float:
        """Get exchange rate from one currency to another."""
        if from_currency == to_currency:
            return 1.0

        rates = await self.get_latest_rates(from_currency)
        rate = rates.get(to_currency)
        if not rate:
            raise ProviderError(f"Currency {to_currency} not found in rates")

        logger.info(f"Fetched exchange rate {from_currency} -> {to_currency}: {rate}")
        return float(rate)

    async def get_rates_to_base(self, currencies: Iterable[str], base: str) -> Dict[str, float]:
        """
        Price of one unit of each currency in ``base``.

        The API quotes base -> X, so each rate is inverted. Currencies
        missing from the response are left out.
        """
        rates = await self.get_latest_rates(base)
        result = {}
        for currency in currencies:
            if currency == base:
                result[currency] = 1.0
                continue
            rate = rates.get(currency)
            if rate:
                result[currency] = 1 / float(rate)
            else:
                logger.warning(f"Currency {currency} not found in {base} rates")
        return result
