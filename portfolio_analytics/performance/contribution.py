"""
수익 기여도 분석 모듈

종목별 비중, 수익률, 기여 금액(평가액 - 투자금)과 전체 대비 기여율을 계산하고
core / reducing / supporting / watch 태그를 붙입니다. 금액은 기준 통화 단위입니다.
"""

import math
from typing import List, Optional, Sequence

from loguru import logger

from ..config import settings
from ..ingest.fx import convert_to_base, position_currency
from ..models import ContributionEntry, ContributionResponse, Position


TOP_CONTRIBUTOR_COUNT = 5
LAGGARD_COUNT = 3
SUPPORTING_WEIGHT = 5.0


def _finite(value: Optional[float]) -> float:
    return value if value is not None and math.isfinite(value) else 0.0


def rank_contribution(entries: Sequence[ContributionEntry]) -> List[ContributionEntry]:
    """기여 금액 절댓값 상위 5개 중 양수는 core, 음수 중 상위 3개는 reducing"""
    ordered = sorted(entries, key=lambda e: abs(e.contribution_value), reverse=True)

    top = {e.symbol for e in ordered[:TOP_CONTRIBUTOR_COUNT] if e.contribution_value > 0}
    laggards = {e.symbol for e in [e for e in ordered if e.contribution_value < 0][:LAGGARD_COUNT]}

    ranked = []
    for entry in entries:
        if entry.symbol in top:
            tag = "core"
        elif entry.symbol in laggards:
            tag = "reducing"
        elif entry.weight_pct >= SUPPORTING_WEIGHT:
            tag = "supporting"
        else:
            tag = "watch"

        ranked.append(entry.model_copy(update={
            "is_top_contributor": entry.symbol in top,
            "is_lagging": entry.symbol in laggards,
            "tag": tag,
        }))
    return ranked


def contribution_breakdown(
    positions: Sequence[Position],
    base_currency: Optional[str] = None,
    fx_rate: Optional[float] = None,
) -> ContributionResponse:
    """종목별 수익 기여도를 계산합니다.

    Args:
        positions: 현재 포지션
        base_currency: 기준 통화
        fx_rate: USD/KRW 환율

    Returns:
        ContributionResponse (총 평가액이 0 이하면 빈 항목)
    """
    base_currency = base_currency or settings.base_currency

    converted = []
    for position in positions:
        currency = position_currency(position.currency, position.market)
        value = convert_to_base(_finite(position.total_value), currency, base_currency, fx_rate)
        invested = convert_to_base(_finite(position.total_invested), currency, base_currency, fx_rate)
        converted.append((position, currency, value, invested))

    total_value = sum(item[2] for item in converted)
    total_invested = sum(item[3] for item in converted)

    if not converted or total_value <= 0:
        return ContributionResponse(base_currency=base_currency, total_invested=total_invested, total_value=total_value)

    entries = []
    for position, currency, value, invested in converted:
        contribution = value - invested
        entries.append(ContributionEntry(
            symbol=position.symbol,
            name=position.name or position.symbol,
            market=position.market,
            currency=currency,
            weight_pct=value / total_value * 100,
            return_pct=position.return_rate,
            contribution_pct=contribution / total_value * 100,
            contribution_value=contribution,
            investment_value=invested,
            current_value=value,
        ))

    ranked = rank_contribution(entries)
    total_contribution = sum(e.contribution_value for e in ranked)

    logger.debug(f"기여도 분석: {len(ranked)} 종목, 총 기여 {total_contribution:,.0f} {base_currency}")
    return ContributionResponse(
        base_currency=base_currency,
        entries=ranked,
        total_contribution_value=total_contribution,
        total_contribution_pct=total_contribution / total_value * 100,
        total_invested=total_invested,
        total_value=total_value,
    )
