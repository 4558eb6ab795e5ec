"""
통합 포트폴리오 분석기

섹터/지역/자산 유형별 비중, 리스크 지표, 상위 기여 종목, 다각화 점수를 계산합니다.
"""

from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from ..config import settings
from ..ingest.fx import convert_to_base, position_currency
from ..models import Allocation, DailySnapshot, PortfolioAnalysis, Position, RiskMetrics, TopContributor
from .metrics import (
    calculate_concentration,
    calculate_diversification_score,
    calculate_max_drawdown,
    calculate_returns,
    calculate_sharpe_ratio,
    calculate_volatility,
)


def positions_frame(positions: Sequence[Position], fx_rate: Optional[float] = None,
                    base_currency: Optional[str] = None) -> pd.DataFrame:
    """포지션을 기준 통화 평가액이 담긴 데이터프레임으로 변환합니다."""
    base_currency = base_currency or settings.base_currency

    rows = []
    for position in positions:
        currency = position_currency(position.currency, position.market)
        rows.append({
            "symbol": position.symbol,
            "name": position.name or position.symbol,
            "market": position.market,
            "currency": currency,
            "sector": position.sector or "unknown",
            "asset_type": position.asset_type,
            "value": convert_to_base(position.total_value, currency, base_currency, fx_rate),
            "invested": convert_to_base(position.total_invested, currency, base_currency, fx_rate),
            "profit_loss": convert_to_base(position.profit_loss, currency, base_currency, fx_rate),
            "return_rate": position.return_rate,
        })

    columns = ["symbol", "name", "market", "currency", "sector", "asset_type",
               "value", "invested", "profit_loss", "return_rate"]
    return pd.DataFrame(rows, columns=columns)


def calculate_allocation(frame: pd.DataFrame, key: str) -> List[Allocation]:
    """key 컬럼 기준 그룹별 비중

    Returns:
        평가액 내림차순 Allocation 리스트
    """
    if frame.empty:
        return []

    total_value = frame["value"].sum()
    grouped = frame.groupby(key, sort=False).agg(
        value=("value", "sum"),
        invested=("invested", "sum"),
        count=("symbol", "count"),
    )

    allocations = []
    for group, row in grouped.iterrows():
        percentage = row["value"] / total_value * 100 if total_value > 0 else 0.0
        return_rate = (row["value"] - row["invested"]) / row["invested"] * 100 if row["invested"] > 0 else 0.0
        allocations.append(Allocation(
            key=str(group),
            value=float(row["value"]),
            percentage=float(percentage),
            return_rate=float(return_rate),
            count=int(row["count"]),
        ))

    return sorted(allocations, key=lambda a: a.value, reverse=True)


def calculate_position_risk(frame: pd.DataFrame,
                            history: Optional[Sequence[DailySnapshot]] = None) -> RiskMetrics:
    """리스크 지표를 계산합니다.

    평가액 이력이 2개 이상이면 시계열 기준, 아니면 포지션 수익률의 횡단면 분산을 사용합니다.
    어느 쪽을 썼는지는 basis에 남깁니다.
    """
    if frame.empty:
        return RiskMetrics(basis="empty")

    concentration = calculate_concentration(frame["value"].tolist())

    if history and len(history) >= 2:
        values = [snapshot.total_value for snapshot in sorted(history, key=lambda s: s.date)]
        risk_free = settings.risk_free_rate
        return RiskMetrics(
            volatility=calculate_volatility(values),
            sharpe_ratio=calculate_sharpe_ratio(calculate_returns(values), risk_free),
            max_drawdown=calculate_max_drawdown(values),
            concentration=concentration,
            basis="time-series",
        )

    # 포지션 수익률(%)의 횡단면 분산
    rates = frame["return_rate"].astype(float)
    volatility = float(rates.std(ddof=0)) if len(rates) > 0 else 0.0
    if not np.isfinite(volatility):
        volatility = 0.0
    average = float(rates.mean())

    return RiskMetrics(
        volatility=volatility,
        sharpe_ratio=average / volatility if volatility > 0 else 0.0,
        max_drawdown=float(min(0.0, rates.min())),
        concentration=concentration,
        basis="cross-section",
    )


def calculate_top_contributors(frame: pd.DataFrame, limit: int = 5) -> List[TopContributor]:
    """손익 기준 상위 기여 종목"""
    if frame.empty:
        return []

    total_value = frame["value"].sum()
    ranked = frame.sort_values("profit_loss", ascending=False, kind="mergesort").head(limit)

    return [
        TopContributor(
            symbol=row.symbol,
            contribution=float(row.profit_loss),
            weight=float(row.value / total_value * 100) if total_value > 0 else 0.0,
            return_rate=float(row.return_rate),
        )
        for row in ranked.itertuples()
    ]


class PortfolioAnalyzer:
    """
    통합 포트폴리오 분석기
    - 기준 통화 환산
    - 그룹별 비중
    - 리스크 지표 / 다각화 점수
    """

    def __init__(self, fx_rate: Optional[float] = None, base_currency: Optional[str] = None):
        """
        Args:
            fx_rate: USD/KRW 환율
            base_currency: 기준 통화 (None이면 설정값)
        """
        self.fx_rate = fx_rate
        self.base_currency = base_currency or settings.base_currency

    def analyze(self, positions: Sequence[Position],
                history: Optional[Sequence[DailySnapshot]] = None,
                top_n: int = 5) -> PortfolioAnalysis:
        """포트폴리오 종합 분석

        Args:
            positions: 현재 포지션
            history: 일별 평가액 이력 (있으면 시계열 리스크 지표 사용)
            top_n: 상위 기여 종목 수

        Returns:
            PortfolioAnalysis
        """
        logger.info(f"🔍 포트폴리오 분석 시작: {len(positions)} 종목")

        frame = positions_frame(positions, self.fx_rate, self.base_currency)
        total_value = float(frame["value"].sum()) if not frame.empty else 0.0
        total_invested = float(frame["invested"].sum()) if not frame.empty else 0.0
        overall = (total_value - total_invested) / total_invested * 100 if total_invested > 0 else 0.0

        sectors = calculate_allocation(frame, "sector")
        regions = calculate_allocation(frame, "market")
        assets = calculate_allocation(frame, "asset_type")

        score = calculate_diversification_score(
            [a.percentage for a in sectors],
            [a.percentage for a in regions],
            [a.percentage for a in assets],
            len(frame),
        )
        risk = calculate_position_risk(frame, history).model_copy(update={"diversification_score": score})

        analysis = PortfolioAnalysis(
            base_currency=self.base_currency,
            total_value=total_value,
            total_invested=total_invested,
            overall_return_rate=overall,
            sector_allocation=sectors,
            region_allocation=regions,
            asset_allocation=assets,
            risk_metrics=risk,
            top_contributors=calculate_top_contributors(frame, top_n),
            diversification_score=score,
        )

        logger.success(f"✅ 분석 완료: 총 평가액 {total_value:,.0f} {self.base_currency}, 다각화 점수 {score:.0f}")
        return analysis
