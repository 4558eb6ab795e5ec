"""
데이터 수집 계층 테스트 (가격 시계열 저장소, 환율, 번들 로더)
"""

from datetime import date

import pytest

from portfolio_analytics.errors import MalformedSeriesError
from portfolio_analytics.ingest.bundle import BUNDLE_TEMPLATE, load_bundle
from portfolio_analytics.ingest.fx import (
    SpotRateProvider,
    convert_to_base,
    convert_with_rate,
    position_currency,
)
from portfolio_analytics.ingest.price_series import (
    PriceSeriesStore,
    merge_series,
    most_recent,
    price_on_or_before,
    symbol_candidates,
    validate_series,
)
from portfolio_analytics.ingest.yfinance_source import history_to_points
from portfolio_analytics.models import PricePoint, PriceSeries


class FakeClock:
    """테스트용 수동 시계"""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def points(*pairs):
    return [PricePoint(date=date.fromisoformat(d), close=c) for d, c in pairs]


@pytest.fixture
def sample_series():
    """3개 포인트 시계열"""
    return PriceSeries(
        symbol="AAPL",
        points=tuple(points(("2024-01-02", 100.0), ("2024-01-05", 110.0), ("2024-01-10", 120.0))),
    )


class TestPriceSeries:
    """가격 시계열 병합/조회 테스트"""

    def test_merge_is_idempotent(self, sample_series):
        """같은 시계열을 병합해도 결과가 같은지 테스트"""
        merged = merge_series(sample_series.points, sample_series.points)

        assert merged == sample_series.points

    def test_merge_prefers_incoming(self, sample_series):
        """같은 날짜는 새 값이 우선하고 날짜 오름차순을 유지하는지 테스트"""
        incoming = points(("2024-01-05", 111.0), ("2024-01-03", 105.0))

        merged = merge_series(sample_series.points, incoming)

        assert [p.date.isoformat() for p in merged] == ["2024-01-02", "2024-01-03", "2024-01-05", "2024-01-10"]
        assert merged[2].close == 111.0

    def test_merge_drops_invalid_closes(self):
        """0 이하 또는 NaN 종가가 제거되는지 테스트"""
        merged = merge_series([], points(("2024-01-02", 0.0), ("2024-01-03", float("nan")), ("2024-01-04", 5.0)))

        assert len(merged) == 1
        assert merged[0].close == 5.0

    def test_price_on_or_before(self, sample_series):
        """기준일 이전(포함) 가장 최근 가격 조회"""
        assert price_on_or_before(sample_series, date(2024, 1, 5)).close == 110.0
        assert price_on_or_before(sample_series, date(2024, 1, 7)).close == 110.0
        assert price_on_or_before(sample_series, date(2024, 1, 1)) is None
        assert price_on_or_before(None, date(2024, 1, 7)) is None

    def test_most_recent(self, sample_series):
        assert most_recent(sample_series).close == 120.0
        assert most_recent(PriceSeries(symbol="X")) is None

    def test_validate_series_rejects_unordered(self):
        """날짜가 오름차순이 아니면 예외"""
        series = PriceSeries(symbol="BAD", points=tuple(points(("2024-01-05", 1.0), ("2024-01-02", 2.0))))

        with pytest.raises(MalformedSeriesError):
            validate_series(series)

    def test_symbol_candidates(self):
        """한국 종목은 .KS, .KQ 순으로 시도"""
        assert symbol_candidates("005930", "KR") == ["005930.KS", "005930.KQ"]
        assert symbol_candidates("005930.ks", "KR") == ["005930.KS"]
        assert symbol_candidates(" aapl ", "US") == ["AAPL"]
        assert symbol_candidates("^KS11", "KR") == ["^KS11"]


class TestPriceSeriesStore:
    """TTL 캐시 저장소 테스트"""

    def test_cache_hit_within_ttl(self):
        """TTL 이내에는 다시 조회하지 않는지 테스트"""
        calls = []

        def fetcher(symbol, start):
            calls.append(symbol)
            return points(("2024-01-02", 100.0), ("2024-01-03", 101.0))

        clock = FakeClock()
        store = PriceSeriesStore(fetcher=fetcher, ttl_seconds=60, clock=clock)

        first = store.get_series("AAPL", "US", date(2024, 1, 2))
        clock.advance(30)
        second = store.get_series("AAPL", "US", date(2024, 1, 2))

        assert first.source == "live"
        assert second.source == "cache"
        assert calls == ["AAPL"]

    def test_refetch_after_ttl(self):
        """TTL이 지나면 다시 조회하는지 테스트"""
        calls = []

        def fetcher(symbol, start):
            calls.append(symbol)
            return points(("2024-01-02", 100.0))

        clock = FakeClock()
        store = PriceSeriesStore(fetcher=fetcher, ttl_seconds=60, clock=clock)

        store.get_series("AAPL", "US", date(2024, 1, 2))
        clock.advance(61)
        store.get_series("AAPL", "US", date(2024, 1, 2))

        assert len(calls) == 2

    def test_korean_symbol_falls_back_to_kosdaq(self):
        """코스피 심볼에 데이터가 없으면 코스닥 심볼을 시도하는지 테스트"""
        tried = []

        def fetcher(symbol, start):
            tried.append(symbol)
            if symbol.endswith(".KQ"):
                return points(("2024-01-02", 5000.0))
            return []

        store = PriceSeriesStore(fetcher=fetcher, ttl_seconds=60, clock=FakeClock())
        series = store.get_series("035720", "KR", date(2024, 1, 2))

        assert tried == ["035720.KS", "035720.KQ"]
        assert series.symbol == "035720"
        assert series.points[0].close == 5000.0

    def test_stale_cache_used_when_fetch_fails(self):
        """조회 실패 시 만료된 캐시를 반환하는지 테스트"""
        state = {"fail": False}

        def fetcher(symbol, start):
            if state["fail"]:
                raise ConnectionError("network down")
            return points(("2024-01-02", 100.0))

        clock = FakeClock()
        store = PriceSeriesStore(fetcher=fetcher, ttl_seconds=60, clock=clock)
        store.get_series("AAPL", "US", date(2024, 1, 2))

        state["fail"] = True
        clock.advance(120)
        series = store.get_series("AAPL", "US", date(2024, 1, 2))

        assert series is not None
        assert series.source == "cache"
        assert series.points[0].close == 100.0

    def test_missing_series_returns_none(self):
        store = PriceSeriesStore(fetcher=lambda symbol, start: None, clock=FakeClock())

        assert store.get_series("NOPE", "US", date(2024, 1, 2)) is None

    def test_fetch_many_deduplicates(self):
        """중복 심볼은 한 번만 조회하는지 테스트"""
        calls = []

        def fetcher(symbol, start):
            calls.append(symbol)
            return points(("2024-01-02", 10.0))

        store = PriceSeriesStore(fetcher=fetcher, ttl_seconds=60, clock=FakeClock())
        result = store.fetch_many([("AAPL", "US"), ("MSFT", "US"), ("AAPL", "US")], date(2024, 1, 2), max_workers=2)

        assert set(result) == {"AAPL", "MSFT"}
        assert sorted(calls) == ["AAPL", "MSFT"]

    def test_put_merges_points(self):
        store = PriceSeriesStore(clock=FakeClock())
        store.put("AAPL", "US", points(("2024-01-02", 1.0)))
        series = store.put("AAPL", "US", points(("2024-01-03", 2.0)))

        assert len(series) == 2
        assert store.get_cached("aapl", "US") is not None


class TestCurrency:
    """통화 변환 테스트"""

    def test_convert_with_rate(self):
        assert convert_with_rate(10.0, "USD", "KRW", 1400.0) == 14000.0
        assert convert_with_rate(14000.0, "KRW", "USD", 1400.0) == 10.0
        assert convert_with_rate(10.0, "USD", "USD", 1400.0) == 10.0

    def test_missing_rate_passes_through(self):
        """환율이 없으면 변환 없이 통과"""
        assert convert_with_rate(10.0, "USD", "KRW", None) == 10.0
        assert convert_with_rate(10.0, "USD", "KRW", 0.0) == 10.0

    def test_position_currency_defaults_by_market(self):
        assert position_currency(None, "KR") == "KRW"
        assert position_currency("EUR", "US") == "USD"
        assert convert_to_base(1.0, "JPY", "KRW", 1400.0) == 1400.0


class TestSpotRateProvider:
    """환율 조회기 테스트"""

    def test_live_then_cache(self):
        calls = []

        def fetcher(base, quote):
            calls.append((base, quote))
            return 1350.0

        provider = SpotRateProvider(fetcher=fetcher, ttl_seconds=60, clock=FakeClock())

        assert provider.get_spot_rate().source == "live"
        cached = provider.get_spot_rate()
        assert cached.source == "cache"
        assert cached.rate == 1350.0
        assert len(calls) == 1

    def test_fallback_rate_on_failure(self):
        """조회 실패 시 설정된 폴백 환율 사용"""

        def fetcher(base, quote):
            raise ConnectionError("timeout")

        provider = SpotRateProvider(fetcher=fetcher, fallback_rate=1300.0, clock=FakeClock())
        rate = provider.get_spot_rate()

        assert rate.source == "fallback"
        assert rate.rate == 1300.0

    def test_last_known_rate_preferred_over_fallback(self):
        """만료된 캐시가 있으면 폴백 대신 마지막 값을 사용"""
        state = {"fail": False}

        def fetcher(base, quote):
            if state["fail"]:
                return None
            return 1380.0

        clock = FakeClock()
        provider = SpotRateProvider(fetcher=fetcher, ttl_seconds=60, fallback_rate=1300.0, clock=clock)
        provider.get_spot_rate()

        state["fail"] = True
        clock.advance(120)
        rate = provider.get_spot_rate()

        assert rate.source == "fallback"
        assert rate.rate == 1380.0


class TestBundle:
    """번들 로더 테스트"""

    def test_load_template(self, tmp_path):
        path = tmp_path / "portfolio.yaml"
        path.write_text(BUNDLE_TEMPLATE, encoding="utf-8")

        bundle = load_bundle(path)

        assert bundle.base_currency == "KRW"
        assert [p.symbol for p in bundle.positions] == ["AAPL", "005930"]
        assert bundle.positions[0].total_value == 1900.0
        assert bundle.positions[1].currency == "KRW"
        assert len(bundle.prices["AAPL"]) == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_bundle(tmp_path / "missing.yaml")

    def test_history_to_points(self):
        """yfinance 데이터프레임 변환 (0 이하 종가 제외)"""
        import pandas as pd

        frame = pd.DataFrame(
            {"Close": [100.0, 0.0, 102.0]},
            index=pd.to_datetime(["2024-01-03", "2024-01-04", "2024-01-02"]),
        )

        result = history_to_points(frame)

        assert [p.date.isoformat() for p in result] == ["2024-01-02", "2024-01-03"]
        assert history_to_points(pd.DataFrame()) == []
