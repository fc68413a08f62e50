"""Monthly exchange rates from client currency settings."""
from datetime import date, datetime

import pytest

from conftest import CLIENT_ID
from dashboard.services.exchange_rate_service import (
    CurrencyConversionIndex,
    ExchangeRateService,
    month_key,
)


@pytest.mark.parametrize("value, fallback, expected", [
    (date(2024, 3, 9), None, "2024-03"),
    (datetime(2023, 12, 31, 23, 0), None, "2023-12"),
    ("2024-03-09", None, "2024-03"),
    ("2024-03", None, "2024-03"),
    ("2024-03-09T10:00:00", None, "2024-03"),
    (None, "2024-01", "2024-01"),
    ("garbage", "2024-01", "2024-01"),
    (None, None, None),
])
def test_month_key(value, fallback, expected):
    assert month_key(value, fallback) == expected


def test_index_from_documents_maps_store_and_bigquery_ids():
    index = CurrencyConversionIndex.from_documents(
        {"currencySettings": {"baseCurrency": "gbp", "monthlyRates": {"eur": {"2024-03": 1.25}}}},
        [
            {"storeId": "201", "bigQueryWebsiteId": "eu_site", "displayCurrencyCode": "eur"},
            {"storeId": "101", "bigQueryWebsiteId": "uk_site"},
        ],
    )

    assert index.base_currency == "GBP"
    assert index.store_currencies == {"eu_site": "EUR", "201": "EUR"}
    assert index.rate_for("201", "2024-03-02") == pytest.approx(0.8)
    assert index.rate_for("eu_site", "2024-03-02") == pytest.approx(0.8)


@pytest.mark.parametrize("store_id, day", [
    ("101", "2024-03-02"),   # no currency on the store
    ("ghost", "2024-03-02"),  # unknown store
    ("201", "2024-04-02"),   # no rate for the month
    (None, "2024-03-02"),
])
def test_missing_rate_means_no_conversion(store_id, day):
    index = CurrencyConversionIndex(
        base_currency="GBP",
        monthly_rates={"EUR": {"2024-03": 0.5}},
        store_currencies={"201": "EUR", "301": "GBP"},
    )

    assert index.rate_for(store_id, day) == 1.0
    assert index.convert(42.0, store_id, day) == 42.0


def test_store_in_base_currency_is_not_converted():
    index = CurrencyConversionIndex(monthly_rates={"GBP": {"2024-03": 2.0}}, store_currencies={"1": "GBP"})

    assert index.rate_for("1", "2024-03-01") == 1.0


def test_non_positive_rate_is_ignored():
    index = CurrencyConversionIndex(monthly_rates={"EUR": {"2024-03": 0}}, store_currencies={"1": "EUR"})

    assert index.rate_for("1", "2024-03-01") == 1.0


def test_load_index_for_seeded_client(store, seeded_client):
    index = ExchangeRateService().load_index(store, CLIENT_ID)

    assert index.convert(10.0, "201", date(2024, 3, 1)) == 20.0
    assert index.convert(10.0, "101", date(2024, 3, 1)) == 10.0


def test_load_index_for_missing_client_is_empty(store):
    index = ExchangeRateService(default_currency="USD").load_index(store, "ghost")

    assert index.base_currency == "USD"
    assert index.rate_for("201", "2024-03-01") == 1.0
