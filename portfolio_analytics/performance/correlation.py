"""
종목 간 상관관계 모듈

모든 종목 날짜의 합집합 위에서 일 수익률을 만들고 쌍별 피어슨 상관계수를 계산합니다.
수익률은 연속으로 존재하는 두 가격 사이에서만 계산합니다.
"""

from typing import Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from ..models import CorrelationMatrix, PriceSeries


def price_frame(series_by_symbol: Mapping[str, Optional[PriceSeries]],
                symbols: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """종목별 종가를 날짜 합집합 인덱스의 데이터프레임으로 만듭니다."""
    symbols = list(symbols) if symbols is not None else list(series_by_symbol)

    columns = {}
    for symbol in symbols:
        series = series_by_symbol.get(symbol)
        points = series.points if series else ()
        columns[symbol] = pd.Series(
            {p.date: p.close for p in points if np.isfinite(p.close) and p.close > 0},
            dtype=float,
        )

    frame = pd.DataFrame(columns, columns=symbols)
    return frame.sort_index()


def return_frame(prices: pd.DataFrame) -> pd.DataFrame:
    """직전 가용 가격 대비 수익률 (가격이 없는 날짜는 NaN)"""
    returns = {}
    for symbol in prices.columns:
        available = prices[symbol].dropna()
        returns[symbol] = (available / available.shift(1) - 1).reindex(prices.index)
    return pd.DataFrame(returns, index=prices.index, columns=prices.columns)


def pearson(a: pd.Series, b: pd.Series) -> Optional[float]:
    """두 수익률 시리즈의 피어슨 상관계수

    함께 존재하는 값이 2개 미만이거나 분산이 0이면 None
    """
    mask = a.notna() & b.notna()
    xs = a[mask]
    ys = b[mask]

    if len(xs) < 2 or xs.var(ddof=0) <= 0 or ys.var(ddof=0) <= 0:
        return None

    value = xs.corr(ys)
    return float(value) if np.isfinite(value) else None


def correlation_matrix(series_by_symbol: Mapping[str, Optional[PriceSeries]],
                       symbols: Optional[Sequence[str]] = None) -> CorrelationMatrix:
    """상관계수 행렬 (대각선은 1)

    Args:
        series_by_symbol: {symbol: 가격 시계열}
        symbols: 행렬 순서 (None이면 입력 순서)

    Returns:
        CorrelationMatrix
    """
    prices = price_frame(series_by_symbol, symbols)
    returns = return_frame(prices)
    names = list(prices.columns)

    matrix = [[None] * len(names) for _ in names]
    for i, first in enumerate(names):
        matrix[i][i] = 1.0
        for j in range(i + 1, len(names)):
            value = pearson(returns[first], returns[names[j]])
            matrix[i][j] = value
            matrix[j][i] = value

    logger.debug(f"상관관계 행렬: {len(names)} 종목, {len(prices.index)} 날짜")
    return CorrelationMatrix(symbols=names, matrix=matrix, date_count=len(prices.index))
