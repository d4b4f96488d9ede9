"""Tests for UVA parsing, fetching and inflation adjustment."""

from datetime import date

import httpx
import pytest

from backend.exceptions import NotFoundError, UpstreamError
from backend.models import UVA
from backend.services import uva


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestParse:
    def test_short_keys_sorted(self):
        values = uva.parse_uva_payload([
            {"d": "2024-01-03", "v": 501.5},
            {"d": "2024-01-02", "v": 500.0},
        ])
        assert [v.value_date for v in values] == [date(2024, 1, 2), date(2024, 1, 3)]
        assert values[0].value == 500.0

    def test_alternate_keys_and_bad_rows(self):
        values = uva.parse_uva_payload([
            {"fecha": "2024-01-02T00:00:00", "valor": "500.0"},
            {"fecha": "2024-01-03", "valor": None},
            {"d": "not a date", "v": 1},
            {"d": "2024-01-04", "v": 0},
            "garbage",
        ])
        assert len(values) == 1
        assert values[0].value_date == date(2024, 1, 2)

    def test_non_list_payload(self):
        with pytest.raises(UpstreamError):
            uva.parse_uva_payload({"error": "quota"})


class TestFetch:
    @pytest.mark.asyncio
    async def test_range_filter(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["desde"] == "2024-01-02"
            return httpx.Response(200, json=[
                {"d": "2024-01-01", "v": 499.0},
                {"d": "2024-01-02", "v": 500.0},
                {"d": "2024-01-03", "v": 501.0},
            ])

        async with _client(handler) as client:
            values = await uva.fetch_uva_values(date(2024, 1, 2), date(2024, 1, 3), client=client)
        assert [v.value for v in values] == [500.0, 501.0]

    @pytest.mark.asyncio
    async def test_http_error_wrapped(self):
        async with _client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(UpstreamError):
                await uva.fetch_uva_values(client=client)

    @pytest.mark.asyncio
    async def test_latest(self):
        payload = [{"d": "2024-01-02", "v": 500.0}, {"d": "2024-01-03", "v": 501.0}]
        async with _client(lambda request: httpx.Response(200, json=payload)) as client:
            latest = await uva.fetch_latest_uva(client=client)
        assert latest.value_date == date(2024, 1, 3)

    @pytest.mark.asyncio
    async def test_latest_empty(self):
        async with _client(lambda request: httpx.Response(200, json=[])) as client:
            with pytest.raises(UpstreamError):
                await uva.fetch_latest_uva(client=client)


class TestStorage:
    def test_store_counts_created_and_updated(self, repo):
        repo.add(UVA(value_date=date(2024, 1, 2), value=499.0))
        stats = uva.store_uva_values(repo, [
            uva.UVAValue(date(2024, 1, 2), 500.0),
            uva.UVAValue(date(2024, 1, 3), 501.0),
        ])
        assert stats == {"created": 1, "updated": 1}
        assert repo.get_uva(date(2024, 1, 2)).value == 500.0


class TestInflation:
    @pytest.fixture
    def stored(self, repo):
        repo.add(UVA(value_date=date(2023, 1, 2), value=200.0))
        repo.add(UVA(value_date=date(2024, 1, 2), value=500.0))
        repo.add(UVA(value_date=date(2024, 7, 1), value=750.0))
        return repo

    def test_adjustment_uses_closest_previous_values(self, stored):
        result = uva.calculate_inflation_adjustment(stored, 1000.0, date(2024, 1, 5), date(2024, 7, 10))
        assert result.from_value == 500.0
        assert result.to_value == 750.0
        assert result.adjusted_amount == pytest.approx(1500.0)
        assert result.inflation_pct == pytest.approx(50.0)

    def test_missing_data(self, stored):
        with pytest.raises(NotFoundError):
            uva.calculate_inflation_adjustment(stored, 1000.0, date(2020, 1, 1), date(2024, 1, 2))
        assert uva.inflation_factor(stored, date(2020, 1, 1), date(2024, 1, 2)) is None

    def test_annualized(self, stored):
        assert uva.annualized_inflation(stored, date(2024, 1, 2)) == pytest.approx(1.5)

    def test_annualized_fallback(self, repo):
        assert uva.annualized_inflation(repo, date(2024, 1, 2)) == uva.settings.annual_inflation_rate
