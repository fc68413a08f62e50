"""
Exchange Rate Service
Reads manually-managed monthly exchange rates from the client's currency settings.
All conversions target the client's base (reporting) currency.

Admin enters: monthlyRates["EUR"]["2024-03"] = 1.17 means "1 GBP = 1.17 EUR"
for March 2024. Converting a EUR amount back to GBP divides by the rate, so
the multiplier stored in the index is 1 / rate.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional, Union

from dashboard.services.document_store import DocumentStore, collection_path

logger = logging.getLogger(__name__)

MONTH_KEY_RE = re.compile(r"^\d{4}-\d{2}$")

DateLike = Union[date, datetime, str, None]


def month_key(value: DateLike, fallback: Optional[str] = None) -> Optional[str]:
    """Return the "YYYY-MM" key for a row date, or the fallback month."""
    if isinstance(value, (date, datetime)):
        return f"{value.year:04d}-{value.month:02d}"
    if isinstance(value, str):
        text = value.strip()
        if MONTH_KEY_RE.match(text[:7]) and (len(text) == 7 or text[7] in "-T "):
            return text[:7]
    if fallback and MONTH_KEY_RE.match(fallback):
        return fallback
    return None


@dataclass
class CurrencyConversionIndex:
    """(store id, month) -> multiplier into the client's base currency."""

    base_currency: str = "GBP"
    # {currency: {"YYYY-MM": units of currency per 1 base}}
    monthly_rates: Dict[str, Dict[str, float]] = field(default_factory=dict)
    # {store id or bigQueryWebsiteId: currency code}
    store_currencies: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_documents(
        cls,
        client: Optional[Dict[str, Any]],
        websites: Iterable[Dict[str, Any]],
        default_currency: str = "GBP",
    ) -> "CurrencyConversionIndex":
        settings_doc = (client or {}).get("currencySettings") or {}
        base = (settings_doc.get("baseCurrency") or default_currency).upper()

        rates: Dict[str, Dict[str, float]] = {}
        for currency, months in (settings_doc.get("monthlyRates") or {}).items():
            if not isinstance(months, dict):
                continue
            rates[currency.upper()] = {m: r for m, r in months.items() if isinstance(r, (int, float))}

        store_currencies: Dict[str, str] = {}
        for website in websites:
            currency = (
                website.get("storeCurrencyCode")
                or website.get("displayCurrencyCode")
                or website.get("baseCurrencyCode")
            )
            if not currency:
                continue
            for key in (website.get("bigQueryWebsiteId"), website.get("storeId")):
                if key:
                    store_currencies[str(key)] = currency.upper()

        return cls(base_currency=base, monthly_rates=rates, store_currencies=store_currencies)

    def rate_for(self, store_id: Optional[str], day: DateLike = None, fallback_month: Optional[str] = None) -> float:
        """Multiplier for a store's amounts on ``day``. 1.0 when nothing applies."""
        if not store_id:
            return 1.0
        currency = self.store_currencies.get(str(store_id))
        if not currency or currency == self.base_currency:
            return 1.0

        key = month_key(day, fallback_month)
        if key is None:
            logger.debug("No month for %s conversion of store %s", currency, store_id)
            return 1.0

        rate = self.monthly_rates.get(currency, {}).get(key)
        if not rate or rate <= 0:
            logger.debug("Missing %s rate for %s (store %s), using 1.0", currency, key, store_id)
            return 1.0

        return 1.0 / rate

    def convert(self, amount: float, store_id: Optional[str], day: DateLike = None, fallback_month: Optional[str] = None) -> float:
        if not amount:
            return amount
        return amount * self.rate_for(store_id, day, fallback_month)


class ExchangeRateService:

    def __init__(self, default_currency: str = "GBP"):
        self.default_currency = default_currency

    def load_index(self, store: DocumentStore, client_id: str) -> CurrencyConversionIndex:
        """Build the conversion index for a client.

        A missing client yields an empty index, so every multiplier is 1.0.
        """
        client = store.get_document("clients", client_id)
        if client is None:
            logger.warning("Client %s not found when loading currency settings", client_id)
            return CurrencyConversionIndex(base_currency=self.default_currency)

        websites = store.list_documents(collection_path("clients", client_id, "websites"))
        return CurrencyConversionIndex.from_documents(client, websites, self.default_currency)
