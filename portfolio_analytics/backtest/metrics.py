"""
리스크 지표 계산 모듈

변동성, 샤프 비율, 최대 낙폭, 집중도(HHI), 다각화 점수를 계산합니다.
모든 함수는 숫자 시계열(또는 비중 맵)을 받아 하나의 float를 반환하는 순수 함수입니다.
결과는 퍼센트(×100) 단위입니다.
"""

from typing import Iterable, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
from loguru import logger

from ..config import settings


Numeric = Union[pd.Series, Sequence[float], np.ndarray]


def _as_series(values: Numeric) -> pd.Series:
    series = values if isinstance(values, pd.Series) else pd.Series(list(values), dtype=float)
    return series.astype(float).dropna()


def calculate_returns(values: Numeric) -> pd.Series:
    """평가액 시계열의 기간 수익률을 계산합니다.

    직전 값이 0 이하인 구간의 수익률은 0으로 처리합니다.

    Args:
        values: 평가액 시계열

    Returns:
        길이가 len(values) - 1인 수익률 시리즈
    """
    series = _as_series(values)
    if len(series) < 2:
        return pd.Series(dtype=float)

    previous = series.shift(1).iloc[1:]
    current = series.iloc[1:]
    returns = (current - previous) / previous
    returns[previous <= 0] = 0.0

    return returns.reset_index(drop=True)


def compound_returns(returns: Numeric, start: float = 1.0) -> pd.Series:
    """수익률을 복리로 누적한 가치 시계열 (start부터 시작)"""
    returns = _as_series(returns)
    return start * (1 + returns).cumprod()


def calculate_volatility(values: Numeric, trading_days: Optional[int] = None) -> float:
    """연율화 변동성 (%)

    기간 수익률의 모표준편차 × √거래일수 × 100. 길이가 2 미만이면 0.
    """
    trading_days = trading_days or settings.trading_days
    series = _as_series(values)

    if len(series) < 2:
        return 0.0

    returns = calculate_returns(series)
    std = returns.std(ddof=0)
    if not np.isfinite(std):
        return 0.0

    return float(std * np.sqrt(trading_days) * 100)


def calculate_sharpe_ratio(returns: Numeric, risk_free_rate: Optional[float] = None) -> float:
    """샤프 비율 = (평균 수익률 - 무위험 수익률) / 표준편차

    무위험 수익률은 returns와 같은 주기 단위입니다. 표준편차가 0이면 0을 반환합니다.
    """
    risk_free_rate = settings.risk_free_rate if risk_free_rate is None else risk_free_rate
    returns = _as_series(returns)

    if len(returns) == 0:
        return 0.0

    std = returns.std(ddof=0)
    if not np.isfinite(std) or std == 0:
        return 0.0

    return float((returns.mean() - risk_free_rate) / std)


def calculate_max_drawdown(values: Numeric) -> float:
    """최대 낙폭 (%, 항상 0 이하)

    누적 최고점 대비 하락률 중 가장 작은 값입니다. 최고점이 양수인 구간만 평가하며,
    0 이하로 떨어진 값은 -100% 이하의 낙폭이 됩니다.
    """
    series = _as_series(values)

    if len(series) == 0:
        return 0.0

    running_peak = series.cummax()
    valid = running_peak > 0
    if not valid.any():
        return 0.0

    drawdown = (series[valid] - running_peak[valid]) / running_peak[valid]

    return float(min(0.0, drawdown.min()) * 100)


def calculate_concentration(weights: Union[Mapping[str, float], Iterable[float]]) -> float:
    """집중도 (HHI) = Σ (비중 %)²

    Args:
        weights: 종목별 평가액 또는 비중. 합계로 나누어 퍼센트로 정규화합니다.

    Returns:
        0 ~ 10000 범위의 HHI
    """
    values = list(weights.values()) if isinstance(weights, Mapping) else list(weights)
    array = np.array([v for v in values if v is not None and np.isfinite(v) and v > 0], dtype=float)

    total = array.sum()
    if total <= 0:
        return 0.0

    percentages = array / total * 100
    return float((percentages ** 2).sum())


def _count_points(count: int, tiers: Sequence[tuple], per_item: float) -> float:
    for threshold, points in tiers:
        if count >= threshold:
            return points
    return count * per_item


def _weight_points(max_weight: float, tiers: Sequence[tuple]) -> float:
    for limit, points in tiers:
        if max_weight < limit:
            return points
    return 0.0


def calculate_diversification_score(
    sector_percentages: Sequence[float],
    region_percentages: Sequence[float],
    asset_percentages: Sequence[float],
    position_count: int,
) -> float:
    """다각화 점수 (0-100, 높을수록 분산)

    종목 수 30점, 섹터 분산 30점, 지역 분산 20점, 자산 유형 분산 20점으로 구성됩니다.
    그룹 수가 많고 최대 그룹 비중이 낮을수록 점수가 높습니다.
    """
    if position_count <= 0:
        return 0.0

    score = 0.0

    # 종목 수
    score += _count_points(position_count, [(20, 30), (15, 25), (10, 20), (5, 15)], 3)

    # 섹터 분산
    if sector_percentages:
        score += _count_points(len(sector_percentages), [(8, 15), (5, 10)], 2)
        score += _weight_points(max(sector_percentages), [(30, 15), (40, 10), (50, 5)])

    # 지역 분산
    if region_percentages:
        score += _count_points(len(region_percentages), [(3, 10)], 3)
        score += _weight_points(max(region_percentages), [(60, 10), (70, 7), (80, 5)])

    # 자산 유형 분산
    if asset_percentages:
        score += _count_points(len(asset_percentages), [(3, 10)], 3)
        score += _weight_points(max(asset_percentages), [(70, 10), (80, 7), (90, 5)])

    return float(min(100.0, max(0.0, score)))


def calculate_stream_stats(values: Numeric, returns: Numeric,
                           trading_days: Optional[int] = None) -> dict:
    """복리 가치 시계열과 수익률 시계열의 요약 통계

    Args:
        values: 1.0에서 시작하는 복리 가치 시계열 (시작값 제외)
        returns: 같은 길이의 수익률 시계열
        trading_days: 연율화 거래일 수

    Returns:
        total_return, annualized_return, volatility, max_drawdown (모두 %, 소수 2자리)
    """
    trading_days = trading_days or settings.trading_days
    values = _as_series(values)
    returns = _as_series(returns)

    if len(values) == 0:
        return {"total_return": 0.0, "annualized_return": 0.0, "volatility": 0.0, "max_drawdown": 0.0}

    total_return = values.iloc[-1] - 1
    n = len(returns)

    if n > 0 and total_return > -1:
        annualized = (1 + total_return) ** (trading_days / n) - 1
    else:
        annualized = 0.0

    volatility = returns.std(ddof=0) * np.sqrt(trading_days) if n > 0 else 0.0

    # 시작값 1.0을 최고점 후보에 포함
    with_start = pd.concat([pd.Series([1.0]), values], ignore_index=True)
    max_drawdown = calculate_max_drawdown(with_start)

    stats = {
        "total_return": round(float(total_return) * 100, 2),
        "annualized_return": round(float(annualized) * 100, 2),
        "volatility": round(float(volatility) * 100, 2),
        "max_drawdown": round(max_drawdown, 2),
    }
    logger.debug(f"스트림 통계: {stats}")
    return stats
