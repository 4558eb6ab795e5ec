"""
백테스트 시뮬레이터 모듈

일별 평가액 스냅샷의 수익률에 전략 배수를 적용해 기준(baseline)과
시나리오 자산 곡선을 비교합니다.
"""

from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from ..config import settings
from ..models import BacktestPoint, BacktestResult, BacktestStats, DailySnapshot
from .metrics import calculate_returns, calculate_stream_stats, compound_returns


# 전략별 일 수익률 변환 (배수, 가산)
STRATEGY_MULTIPLIERS: Dict[str, Tuple[float, float]] = {
    "baseline": (1.0, 0.0),
    "growth": (1.1, 0.0002),
    "defensive": (0.75, 0.0),
    "diversified": (0.9, 0.0005),
    "equal": (0.95, 0.0),
}


def apply_strategy_multiplier(strategy: str, returns: pd.Series) -> pd.Series:
    """일 수익률에 전략 배수를 적용합니다.

    Raises:
        ValueError: 지원하지 않는 전략
    """
    if strategy not in STRATEGY_MULTIPLIERS:
        raise ValueError(f"지원하지 않는 전략: {strategy}")

    multiplier, offset = STRATEGY_MULTIPLIERS[strategy]
    return returns * multiplier + offset


def simulate_returns(
    returns: Sequence[float],
    dates: Sequence[date],
    strategy: str = "baseline",
    trading_days: Optional[int] = None,
) -> BacktestResult:
    """수익률 시계열로 baseline / scenario 두 스트림을 복리 계산합니다.

    Args:
        returns: 일 수익률 (소수, 0.01 == 1%)
        dates: 각 수익률의 날짜
        strategy: 시나리오 전략
        trading_days: 연율화 거래일 수

    Returns:
        BacktestResult
    """
    if len(returns) != len(dates):
        raise ValueError("수익률과 날짜 수가 일치하지 않습니다")

    baseline_returns = pd.Series(list(returns), dtype=float)
    scenario_returns = apply_strategy_multiplier(strategy, baseline_returns)

    baseline_values = compound_returns(baseline_returns)
    scenario_values = compound_returns(scenario_returns)

    series = [
        BacktestPoint(date=d, baseline=round(float(b), 6), scenario=round(float(s), 6))
        for d, b, s in zip(dates, baseline_values, scenario_values)
    ]

    return BacktestResult(
        strategy=strategy,
        start_date=dates[0] if len(dates) else None,
        end_date=dates[-1] if len(dates) else None,
        days=len(baseline_returns),
        baseline=BacktestStats(**calculate_stream_stats(baseline_values, baseline_returns, trading_days)),
        scenario=BacktestStats(**calculate_stream_stats(scenario_values, scenario_returns, trading_days)),
        series=series,
    )


class BacktestSimulator:
    """스냅샷 기반 백테스트 시뮬레이터"""

    def __init__(self, min_snapshots: Optional[int] = None, period_days: Optional[int] = None,
                 trading_days: Optional[int] = None):
        """
        Args:
            min_snapshots: 필요한 최소 스냅샷 수
            period_days: 조회 기간 (일)
            trading_days: 연율화 거래일 수
        """
        self.min_snapshots = min_snapshots or settings.backtest_min_snapshots
        self.period_days = period_days or settings.backtest_period_days
        self.trading_days = trading_days or settings.trading_days

    def _window(self, as_of: Optional[date]) -> Tuple[date, date]:
        end = as_of or datetime.now().date()
        return end - timedelta(days=self.period_days), end

    def run(self, snapshots: Sequence[DailySnapshot], strategy: str = "baseline",
            as_of: Optional[date] = None) -> BacktestResult:
        """백테스트를 실행합니다.

        스냅샷이 min_snapshots 미만이면 예외 대신 insufficient_data 결과를 반환합니다.

        Args:
            snapshots: 일별 평가액 스냅샷 (순서 무관)
            strategy: baseline, growth, defensive, diversified, equal
            as_of: 기간 종료일 (None이면 오늘)

        Returns:
            BacktestResult
        """
        if strategy not in STRATEGY_MULTIPLIERS:
            raise ValueError(f"지원하지 않는 전략: {strategy}")

        start, end = self._window(as_of)
        ordered = sorted(
            (s for s in snapshots if start <= s.date <= end),
            key=lambda s: s.date,
        )

        logger.info(f"🚀 백테스트 시작: {strategy}, 스냅샷 {len(ordered)}개 ({start} ~ {end})")

        if len(ordered) < self.min_snapshots:
            logger.warning(f"⚠️ 스냅샷 부족: {len(ordered)}개 < {self.min_snapshots}개")
            return BacktestResult(
                strategy=strategy,
                start_date=start,
                end_date=end,
                days=self.period_days,
                insufficient_data=True,
                note=f"백테스트에는 최소 {self.min_snapshots}개의 일별 스냅샷이 필요합니다.",
            )

        values = np.array([s.total_value for s in ordered], dtype=float)
        returns = calculate_returns(values)
        dates: List[date] = [s.date for s in ordered[1:]]

        result = simulate_returns(returns.tolist(), dates, strategy, self.trading_days)
        result = result.model_copy(update={"start_date": ordered[0].date, "end_date": ordered[-1].date})

        logger.success(
            f"✅ 백테스트 완료: baseline {result.baseline.total_return:+.2f}%, "
            f"{strategy} {result.scenario.total_return:+.2f}%"
        )
        return result
