"""
절세(손실 실현) 계획 모듈

손실 종목을 손실 규모 순으로 정렬해 목표 금액을 탐욕적으로 채우고,
모든 종목을 harvest-loss / offset-gain / monitor 로 분류합니다.
손익과 실현 금액은 기준 통화 단위입니다.
"""

import math
from typing import List, Optional, Sequence

from loguru import logger

from ..config import settings
from ..ingest.fx import convert_to_base, position_currency
from ..models import (
    Position,
    TaxOptimizationConfig,
    TaxOptimizationPosition,
    TaxOptimizationResponse,
    TaxOptimizationSummary,
)


ACTION_ORDER = {"harvest-loss": 0, "offset-gain": 1, "monitor": 2}


def normalize_config(target_harvest_amount: Optional[float] = None,
                     estimated_tax_rate: Optional[float] = None) -> TaxOptimizationConfig:
    """목표 금액은 0 이상, 세율은 [0, 상한]으로 보정합니다. 비정상 값은 기본값."""
    if target_harvest_amount is not None and math.isfinite(target_harvest_amount):
        target = max(0.0, target_harvest_amount)
    else:
        target = settings.tax_target_harvest_amount

    if estimated_tax_rate is not None and math.isfinite(estimated_tax_rate):
        rate = min(max(estimated_tax_rate, 0.0), settings.tax_rate_cap)
    else:
        rate = settings.tax_estimated_rate

    return TaxOptimizationConfig(target_harvest_amount=target, estimated_tax_rate=rate)


def _candidate(position: Position, profit_loss: float, harvest_amount: float, action: str) -> TaxOptimizationPosition:
    return TaxOptimizationPosition(
        symbol=position.symbol,
        name=position.name,
        currency=position_currency(position.currency, position.market),
        shares=position.shares,
        average_price=position.average_price,
        current_price=position.current_price or 0.0,
        total_value=position.total_value,
        profit_loss=profit_loss,
        return_rate=position.return_rate,
        harvest_amount=harvest_amount,
        action=action,
    )


def plan_tax_loss_harvest(
    positions: Sequence[Position],
    target_harvest_amount: Optional[float] = None,
    estimated_tax_rate: Optional[float] = None,
    base_currency: Optional[str] = None,
    fx_rate: Optional[float] = None,
) -> TaxOptimizationResponse:
    """손실 실현 계획을 세웁니다.

    Args:
        positions: 현재 포지션 (profit_loss 부호가 손익 방향)
        target_harvest_amount: 실현 목표 금액 (기준 통화)
        estimated_tax_rate: 추정 세율 (%)
        base_currency: 기준 통화
        fx_rate: USD/KRW 환율

    Returns:
        TaxOptimizationResponse
    """
    base_currency = base_currency or settings.base_currency
    config = normalize_config(target_harvest_amount, estimated_tax_rate)

    converted = [
        (position, convert_to_base(position.profit_loss, position_currency(position.currency, position.market),
                                   base_currency, fx_rate))
        for position in positions
    ]

    losses = sorted((item for item in converted if item[1] < 0), key=lambda item: abs(item[1]), reverse=True)
    gains = [item for item in converted if item[1] > 0]

    remaining = config.target_harvest_amount
    achieved = 0.0
    candidates: List[TaxOptimizationPosition] = []

    for position, profit_loss in losses:
        take = min(remaining, abs(profit_loss)) if remaining > 0 else 0.0
        if take > 0:
            achieved += take
            remaining -= take
            candidates.append(_candidate(position, profit_loss, take, "harvest-loss"))
        else:
            candidates.append(_candidate(position, profit_loss, 0.0, "monitor"))

    for position, profit_loss in gains:
        candidates.append(_candidate(position, profit_loss, 0.0, "offset-gain"))

    candidates.sort(key=lambda c: (ACTION_ORDER[c.action], -abs(c.profit_loss)))

    total_gain = sum(pl for _, pl in gains)
    total_loss = sum(pl for _, pl in losses)

    summary = TaxOptimizationSummary(
        total_unrealized_gain=total_gain,
        total_unrealized_loss=total_loss,
        net_unrealized=total_gain + total_loss,
        harvest_target=config.target_harvest_amount,
        harvest_achieved=achieved,
        remaining_target=max(0.0, config.target_harvest_amount - achieved),
        estimated_tax_savings=achieved * config.estimated_tax_rate / 100,
    )

    logger.info(
        f"💰 절세 계획: 목표 {config.target_harvest_amount:,.0f}, 실현 {achieved:,.0f} {base_currency} "
        f"(손실 종목 {len(losses)}개)"
    )
    return TaxOptimizationResponse(config=config, summary=summary, candidates=candidates)
