"""
성과 계층 테스트 (주식 수 재구성, 기간 성과, 벤치마크, 기여도, 상관관계)
"""

from datetime import date

import pandas as pd
import pytest

from portfolio_analytics.errors import DataIntegrityError
from portfolio_analytics.models import Position, PricePoint, PriceSeries, Transaction
from portfolio_analytics.performance.benchmark import (
    BENCHMARKS,
    benchmark_legs,
    compare_benchmarks,
    normalize_range,
)
from portfolio_analytics.performance.contribution import contribution_breakdown
from portfolio_analytics.performance.correlation import correlation_matrix, pearson
from portfolio_analytics.performance.periods import (
    annualized_return,
    build_performance_report,
    calculate_period_performance,
    resolve_period_starts,
)
from portfolio_analytics.performance.shares import check_non_negative, shares_as_of


AS_OF = date(2024, 12, 31)


def make_series(symbol, *pairs):
    return PriceSeries(
        symbol=symbol,
        points=tuple(PricePoint(date=date.fromisoformat(d), close=c) for d, c in pairs),
    )


def buy(symbol, day, shares, currency="USD"):
    return Transaction(symbol=symbol, type="buy", date=date.fromisoformat(day), shares=shares, currency=currency)


def sell(symbol, day, shares, currency="USD"):
    return Transaction(symbol=symbol, type="sell", date=date.fromisoformat(day), shares=shares, currency=currency)


@pytest.fixture
def aapl_position():
    """AAPL 10주, 현재가 160"""
    return Position(symbol="AAPL", market="US", currency="USD", shares=10, average_price=100, current_price=160)


@pytest.fixture
def aapl_series():
    return make_series(
        "AAPL",
        ("2024-01-02", 100.0),
        ("2024-06-28", 120.0),
        ("2024-12-30", 150.0),
        ("2024-12-31", 160.0),
    )


class TestShareReconstruction:
    """거래 로그 재생 테스트"""

    def test_buys_and_sells(self):
        transactions = [
            buy("AAPL", "2024-01-02", 10),
            sell("AAPL", "2024-03-01", 4),
            Transaction(symbol="AAPL", type="dividend", date=date(2024, 4, 1), amount=12.0),
        ]

        assert shares_as_of(transactions, date(2024, 1, 1)) == 0
        assert shares_as_of(transactions, date(2024, 1, 2)) == 10
        assert shares_as_of(transactions, date(2024, 12, 31)) == 6

    def test_negative_shares_not_clamped(self):
        """음수 주식 수는 0으로 절삭하지 않음"""
        assert shares_as_of([sell("AAPL", "2024-01-02", 2)], AS_OF) == -2

    def test_check_non_negative(self):
        assert check_non_negative("AAPL", 0.0, AS_OF, strict=True)
        assert not check_non_negative("AAPL", -1.0, AS_OF, strict=False)

        with pytest.raises(DataIntegrityError) as exc_info:
            check_non_negative("AAPL", -1.0, AS_OF, strict=True)
        assert exc_info.value.symbol == "AAPL"


class TestPeriodPerformance:
    """기간별 성과 테스트"""

    def test_period_starts_clamped_to_first_transaction(self):
        starts = resolve_period_starts(AS_OF, date(2024, 1, 2))

        assert starts["1D"] == (date(2024, 12, 30), date(2024, 12, 30))
        assert starts["YTD"] == (date(2024, 1, 1), date(2024, 1, 2))
        assert starts["1Y"] == (date(2023, 12, 31), date(2024, 1, 2))
        assert starts["ALL"] == (date(2024, 1, 2), date(2024, 1, 2))

    def test_all_windows(self, aapl_position, aapl_series):
        """각 구간 시작 가격은 시작일 이전(포함) 가장 최근 종가"""
        periods = calculate_period_performance(
            [aapl_position], [buy("AAPL", "2024-01-02", 10)], {"AAPL": aapl_series},
            base_currency="USD", as_of=AS_OF, strict=True,
        )

        assert list(periods) == ["1D", "1W", "1M", "3M", "YTD", "1Y", "ALL"]
        assert periods["1D"].start_value == 1500.0
        assert periods["1D"].return_rate == 6.67
        assert periods["1W"].start_value == 1200.0
        assert periods["1W"].return_rate == 33.33
        assert periods["ALL"].end_value == 1600.0
        assert periods["ALL"].absolute_change == 600.0
        assert periods["ALL"].return_rate == 60.0
        assert periods["ALL"].period_days == 365
        assert periods["ALL"].annualized_return > 60.0
        assert periods["YTD"].nominal_start_date == date(2024, 1, 1)
        assert periods["YTD"].start_date == date(2024, 1, 2)

    def test_no_transactions_yields_null_returns(self, aapl_position, aapl_series):
        """거래가 없으면 모든 구간 수익률이 None"""
        periods = calculate_period_performance(
            [aapl_position], [], {"AAPL": aapl_series}, base_currency="USD", as_of=AS_OF, strict=True,
        )

        for period in periods.values():
            assert period.start_value == 0.0
            assert period.return_rate is None
            assert period.effective_start_date is None
            assert period.note is not None

    def test_missing_start_price_is_noted(self, aapl_position):
        """시작 시점 가격이 없으면 수익률은 None이고 note에 종목이 남음"""
        late_series = make_series("AAPL", ("2024-12-30", 150.0), ("2024-12-31", 160.0))

        periods = calculate_period_performance(
            [aapl_position], [buy("AAPL", "2024-06-03", 10)], {"AAPL": late_series},
            base_currency="USD", as_of=AS_OF, strict=True,
        )

        assert periods["1W"].return_rate is None
        assert "AAPL" in periods["1W"].note
        assert periods["1D"].return_rate == 6.67

    def test_negative_shares_strict(self, aapl_position, aapl_series):
        with pytest.raises(DataIntegrityError):
            calculate_period_performance(
                [aapl_position], [sell("AAPL", "2024-01-02", 5)], {"AAPL": aapl_series},
                base_currency="USD", as_of=AS_OF, strict=True,
            )

    def test_negative_shares_lenient(self, aapl_position, aapl_series):
        """엄격 모드가 아니면 해당 종목을 제외하고 note에 남김"""
        periods = calculate_period_performance(
            [aapl_position], [sell("AAPL", "2024-01-02", 5)], {"AAPL": aapl_series},
            base_currency="USD", as_of=AS_OF, strict=False,
        )

        assert periods["ALL"].return_rate is None
        assert "AAPL" in periods["ALL"].note

    def test_multi_currency_conversion(self, aapl_position, aapl_series):
        """USD 포지션은 기준 통화(KRW)로 환산해 합산"""
        samsung = Position(symbol="005930", market="KR", currency="KRW", shares=1,
                           average_price=50000, current_price=50000)
        series = {
            "AAPL": aapl_series,
            "005930": make_series("005930", ("2024-01-02", 50000.0), ("2024-12-31", 50000.0)),
        }
        transactions = [buy("AAPL", "2024-01-02", 10), buy("005930", "2024-01-02", 1, currency="KRW")]

        periods = calculate_period_performance(
            [aapl_position, samsung], transactions, series,
            fx_rate=1400.0, base_currency="KRW", as_of=AS_OF, strict=True,
        )

        assert periods["ALL"].start_value == 1_450_000.0
        assert periods["ALL"].end_value == 2_290_000.0

    def test_annualized_return(self):
        assert annualized_return(100.0, 110.0, 365) == pytest.approx(10.0)
        assert annualized_return(0.0, 110.0, 365) is None
        assert annualized_return(100.0, 110.0, 0) is None

    def test_report_includes_benchmark_periods(self, aapl_position, aapl_series):
        benchmark_series = {"^GSPC": make_series("^GSPC", ("2023-12-29", 4000.0), ("2024-12-31", 5000.0))}

        report = build_performance_report(
            [aapl_position], [buy("AAPL", "2024-01-02", 10)], {"AAPL": aapl_series},
            base_currency="USD", as_of=AS_OF, benchmark_series=benchmark_series, strict=True,
        )

        assert len(report.benchmarks) == 7
        assert {b.benchmark_id for b in report.benchmarks} == {"SNP_500"}
        all_period = next(b for b in report.benchmarks if b.period == "ALL")
        assert all_period.return_rate == 25.0
        assert report.current_value == 1600.0
        assert report.latest_valuation_date == AS_OF
        assert report.position_series[0].symbol == "AAPL"
        assert report.notes


class TestBenchmarks:
    """벤치마크 비교 테스트"""

    @pytest.fixture
    def benchmark_series(self):
        return {
            "^GSPC": make_series("^GSPC", ("2023-12-29", 4000.0), ("2024-12-31", 5000.0)),
            "BND": make_series("BND", ("2023-12-29", 70.0), ("2024-12-31", 73.5)),
        }

    def test_definitions(self):
        assert [b.id for b in BENCHMARKS] == ["KOSPI", "SNP_500", "GLOBAL_60_40"]
        assert {leg.symbol for leg in benchmark_legs()} == {"^KS11", "^GSPC", "BND"}

    def test_composite_weighted_return(self, benchmark_series):
        results = compare_benchmarks(benchmark_series, end_date=AS_OF, today=AS_OF)
        by_id = {r.id: r for r in results}

        assert by_id["KOSPI"].return_rate is None
        assert by_id["KOSPI"].source == "fallback"
        assert by_id["SNP_500"].return_rate == 25.0
        assert by_id["SNP_500"].last_price == 5000.0
        assert by_id["GLOBAL_60_40"].return_rate == pytest.approx(17.0)
        assert by_id["GLOBAL_60_40"].note is None

    def test_composite_with_missing_leg(self, benchmark_series):
        """구성 지수 일부가 없으면 남은 비중으로 재정규화하고 note를 남김"""
        del benchmark_series["BND"]

        results = compare_benchmarks(benchmark_series, end_date=AS_OF, today=AS_OF)
        composite = next(r for r in results if r.id == "GLOBAL_60_40")

        assert composite.return_rate == pytest.approx(25.0)
        assert composite.source == "fallback"
        assert "BND" in composite.note

    def test_short_range_widened(self):
        """30일보다 짧은 구간은 1년으로 확장"""
        start, end = normalize_range(date(2024, 12, 20), AS_OF, today=AS_OF)

        assert start == date(2023, 12, 31)
        assert end == AS_OF


class TestContribution:
    """수익 기여도 테스트"""

    def test_tags(self):
        positions = [
            Position(symbol="X", total_value=2000, total_invested=1000),
            Position(symbol="Y", total_value=500, total_invested=1000),
            Position(symbol="Z", total_value=100, total_invested=100),
        ]

        response = contribution_breakdown(positions, base_currency="USD")
        tags = {e.symbol: e.tag for e in response.entries}

        assert tags == {"X": "core", "Y": "reducing", "Z": "watch"}
        assert response.total_value == 2600
        assert response.total_contribution_value == 500
        assert [e.symbol for e in response.entries] == ["X", "Y", "Z"]

    def test_empty_portfolio(self):
        response = contribution_breakdown([], base_currency="USD")

        assert response.entries == []


class TestCorrelation:
    """상관관계 테스트"""

    def test_matrix(self):
        days = ["2024-01-02", "2024-01-03", "2024-01-04", "2024-01-05"]
        a = [100.0, 110.0, 99.0, 120.0]
        series = {
            "A": make_series("A", *zip(days, a)),
            "B": make_series("B", *zip(days, [v * 2 for v in a])),
            "C": make_series("C", *zip(days, [50.0] * 4)),
            "D": make_series("D", ("2024-01-08", 10.0)),
        }

        result = correlation_matrix(series)

        assert result.symbols == ["A", "B", "C", "D"]
        assert result.date_count == 5
        assert result.matrix[0][0] == 1.0
        assert result.matrix[0][1] == pytest.approx(1.0)
        assert result.matrix[1][0] == result.matrix[0][1]
        assert result.matrix[0][2] is None
        assert result.matrix[0][3] is None

    def test_pearson_on_overlap(self):
        """함께 존재하는 값만 사용하며 역방향 움직임은 -1"""
        a = pd.Series([0.01, -0.02, None, 0.03])
        b = pd.Series([-0.02, 0.04, 0.5, -0.06])

        assert pearson(a, b) == pytest.approx(-1.0)
        assert pearson(a, pd.Series([0.1, None, None, None])) is None
