"""
백테스트 시뮬레이터 및 리스크 지표 테스트
"""

import pytest
import pandas as pd
import numpy as np
from datetime import date, timedelta

from portfolio_analytics.backtest.metrics import (
    calculate_concentration,
    calculate_diversification_score,
    calculate_max_drawdown,
    calculate_returns,
    calculate_sharpe_ratio,
    calculate_volatility,
    compound_returns,
)
from portfolio_analytics.backtest.portfolio_analyzer import PortfolioAnalyzer
from portfolio_analytics.backtest.simulator import BacktestSimulator, simulate_returns
from portfolio_analytics.models import DailySnapshot, Position


@pytest.fixture
def sample_values():
    """테스트용 평가액 시계열"""
    np.random.seed(42)
    returns = np.random.normal(0.0008, 0.015, 252)
    return pd.Series(1_000_000 * np.cumprod(1 + returns))


@pytest.fixture
def rising_snapshots():
    """매일 1%씩 증가하는 12일 스냅샷"""
    end = date(2024, 12, 31)
    return [
        DailySnapshot(date=end - timedelta(days=11 - i), total_value=1000 * 1.01 ** i)
        for i in range(12)
    ]


@pytest.fixture
def sample_positions():
    """미국/한국 혼합 포지션"""
    return [
        Position(symbol="AAPL", market="US", currency="USD", total_value=1000, total_invested=800,
                 sector="information-technology"),
        Position(symbol="VNQ", market="US", currency="USD", total_value=500, total_invested=500,
                 sector="real-estate", asset_type="reit"),
        Position(symbol="005930", market="KR", currency="KRW", total_value=700000, total_invested=1000000,
                 sector="information-technology"),
    ]


class TestRiskMetrics:
    """리스크 지표 테스트"""

    def test_returns(self):
        returns = calculate_returns([100, 110, 0, 50])

        assert returns.tolist() == pytest.approx([0.1, -1.0, 0.0])

    def test_volatility(self, sample_values):
        """변동성은 음수가 아니고 짧은 시계열은 0"""
        assert calculate_volatility(sample_values) > 0
        assert calculate_volatility([100]) == 0.0
        assert calculate_volatility([]) == 0.0

    def test_volatility_population_std(self):
        values = [100, 110, 99]
        returns = np.array([0.1, -0.1])

        assert calculate_volatility(values) == pytest.approx(returns.std(ddof=0) * np.sqrt(252) * 100)

    def test_max_drawdown(self, sample_values):
        """최대 낙폭은 항상 0 이하"""
        assert calculate_max_drawdown(sample_values) <= 0
        assert calculate_max_drawdown([100, 120, 90, 130]) == pytest.approx(-25.0)

    def test_max_drawdown_to_zero(self):
        """0까지 떨어지면 낙폭은 -100%"""
        assert calculate_max_drawdown([100, 50, 0]) == pytest.approx(-100.0)
        assert calculate_max_drawdown([0, 100, 50]) == pytest.approx(-50.0)
        assert calculate_max_drawdown([1.0, -0.5]) == pytest.approx(-150.0)

    def test_max_drawdown_monotonic(self):
        """단조 증가 시계열의 최대 낙폭은 정확히 0"""
        assert calculate_max_drawdown([1, 2, 3, 4, 5]) == 0.0

    def test_sharpe_ratio(self):
        assert calculate_sharpe_ratio([0.5, 0.5, 0.5]) == 0.0
        assert calculate_sharpe_ratio([]) == 0.0
        assert calculate_sharpe_ratio([0.02, 0.0]) == pytest.approx(1.0)

    def test_concentration(self):
        """동일 비중 4종목의 HHI는 2500"""
        assert calculate_concentration({"A": 1, "B": 1, "C": 1, "D": 1}) == pytest.approx(2500.0)
        assert calculate_concentration([5.0]) == pytest.approx(10000.0)
        assert calculate_concentration([]) == 0.0

    def test_diversification_score(self):
        assert calculate_diversification_score([], [], [], 0) == 0.0

        concentrated = calculate_diversification_score([100.0], [100.0], [100.0], 1)
        spread = calculate_diversification_score([10.0] * 10, [40.0, 30.0, 30.0], [50.0, 30.0, 20.0], 20)

        assert 0 <= concentrated < spread <= 100

    def test_compound_returns(self):
        values = compound_returns([0.01, -0.02, 0.03])

        assert values.iloc[-1] == pytest.approx(1.01 * 0.98 * 1.03)


class TestBacktestSimulator:
    """백테스트 시뮬레이터 테스트"""

    def test_simulate_baseline(self):
        """일 수익률 [1%, -2%, 3%]의 복리 결과"""
        dates = [date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 4)]

        result = simulate_returns([0.01, -0.02, 0.03], dates, "baseline")

        assert result.series[-1].baseline == round(1.01 * 0.98 * 1.03, 6)
        assert result.baseline.total_return == 1.95
        assert result.baseline.max_drawdown == pytest.approx(-2.0)
        assert result.scenario == result.baseline
        assert result.days == 3

    def test_strategy_multiplier(self):
        dates = [date(2024, 1, 2)]

        result = simulate_returns([0.01], dates, "growth")

        assert result.series[0].scenario == round(1 + 0.01 * 1.1 + 0.0002, 6)
        assert result.series[0].baseline == 1.01

    def test_wipe_out_drawdown(self):
        """레버리지 시나리오가 0 아래로 떨어지면 낙폭도 -100% 이하"""
        dates = [date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 4)]

        result = simulate_returns([0.0, -0.95, 0.01], dates, "growth")

        assert result.baseline.max_drawdown == pytest.approx(-95.0)
        assert result.scenario.total_return < -100
        assert result.scenario.max_drawdown <= -100

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            simulate_returns([0.01], [date(2024, 1, 2)], "momentum")

        with pytest.raises(ValueError):
            BacktestSimulator().run([], strategy="momentum")

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            simulate_returns([0.01, 0.02], [date(2024, 1, 2)])

    def test_insufficient_snapshots(self, rising_snapshots):
        """스냅샷이 부족하면 예외 대신 insufficient_data 결과"""
        result = BacktestSimulator().run(rising_snapshots[:5], as_of=date(2024, 12, 31))

        assert result.insufficient_data
        assert result.series == []
        assert result.days == 365
        assert result.note

    def test_rising_portfolio(self, rising_snapshots):
        """단조 증가 평가액은 모든 전략에서 낙폭이 0"""
        shuffled = list(reversed(rising_snapshots))

        result = BacktestSimulator().run(shuffled, strategy="defensive", as_of=date(2024, 12, 31))

        assert not result.insufficient_data
        assert result.days == 11
        assert result.start_date == date(2024, 12, 20)
        assert result.end_date == date(2024, 12, 31)
        assert result.baseline.max_drawdown == 0.0
        assert result.scenario.max_drawdown == 0.0
        assert result.baseline.total_return > result.scenario.total_return > 0

    def test_window_filters_old_snapshots(self, rising_snapshots):
        old = [DailySnapshot(date=date(2020, 1, 1), total_value=1.0)]

        result = BacktestSimulator(period_days=30).run(old + rising_snapshots, as_of=date(2024, 12, 31))

        assert result.start_date == date(2024, 12, 20)


class TestPortfolioAnalyzer:
    """포트폴리오 분석기 테스트"""

    def test_allocations(self, sample_positions):
        analysis = PortfolioAnalyzer(fx_rate=1400.0, base_currency="USD").analyze(sample_positions)

        assert analysis.total_value == pytest.approx(2000.0)
        for allocations in (analysis.sector_allocation, analysis.region_allocation, analysis.asset_allocation):
            assert sum(a.percentage for a in allocations) == pytest.approx(100.0)

        regions = {a.key: a.percentage for a in analysis.region_allocation}
        assert regions == pytest.approx({"US": 75.0, "KR": 25.0})
        assert analysis.region_allocation[0].key == "US"
        assert analysis.sector_allocation[0].key == "information-technology"

    def test_cross_section_risk(self, sample_positions):
        """평가액 이력이 없으면 포지션 수익률의 횡단면 지표 사용"""
        analysis = PortfolioAnalyzer(fx_rate=1400.0, base_currency="USD").analyze(sample_positions)
        risk = analysis.risk_metrics

        assert risk.basis == "cross-section"
        assert risk.volatility == pytest.approx(np.std([25.0, 0.0, -30.0]))
        assert risk.max_drawdown == pytest.approx(-30.0)
        assert risk.diversification_score == analysis.diversification_score

    def test_time_series_risk(self, sample_positions, rising_snapshots):
        analysis = PortfolioAnalyzer(fx_rate=1400.0, base_currency="USD").analyze(
            sample_positions, history=rising_snapshots
        )

        assert analysis.risk_metrics.basis == "time-series"
        assert analysis.risk_metrics.max_drawdown == 0.0

    def test_top_contributors(self, sample_positions):
        analysis = PortfolioAnalyzer(fx_rate=1400.0, base_currency="USD").analyze(sample_positions)

        assert [c.symbol for c in analysis.top_contributors] == ["AAPL", "VNQ", "005930"]
        assert analysis.top_contributors[0].contribution == pytest.approx(200.0)

    def test_empty_portfolio(self):
        analysis = PortfolioAnalyzer(base_currency="USD").analyze([])

        assert analysis.total_value == 0.0
        assert analysis.risk_metrics.basis == "empty"
        assert analysis.sector_allocation == []
