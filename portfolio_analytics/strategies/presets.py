"""
리밸런싱 목표 비중 프리셋

균등 분산, 현재 유지, 안정형, 공격형, AI 추천(휴리스틱) 프리셋을 만듭니다.
모든 프리셋은 0.1% 단위 반올림 규칙을 거쳐 합계가 정확히 100.0입니다.
"""

import math
from typing import Dict, List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel

from ..config import settings
from ..ingest.fx import convert_to_base, position_currency
from ..models import Position, RebalancingPreset


DEFENSIVE_SECTORS = frozenset({
    "consumer-staples",
    "utilities",
    "health-care",
    "financials",
    "real-estate",
    "materials",
    "energy",
})

GROWTH_SECTORS = frozenset({
    "information-technology",
    "communication-services",
    "consumer-discretionary",
})

DEFENSIVE_ASSET_TYPES = frozenset({"fund", "reit"})

# 0.1% 단위
WEIGHT_FACTOR = 10
WEIGHT_TOTAL = 100 * WEIGHT_FACTOR


class PreparedPosition(BaseModel):
    """기준 통화로 환산된 포지션 요약"""

    symbol: str
    base_value: float
    return_rate: float = 0.0
    sector: Optional[str] = None
    asset_type: str = "stock"

    @property
    def is_defensive(self) -> bool:
        return self.sector in DEFENSIVE_SECTORS or self.asset_type in DEFENSIVE_ASSET_TYPES

    @property
    def is_growth(self) -> bool:
        return self.sector in GROWTH_SECTORS


def prepare_positions(positions: Sequence[Position], base_currency: Optional[str] = None,
                      fx_rate: Optional[float] = None) -> List[PreparedPosition]:
    """포지션을 기준 통화 평가액으로 환산하고 평가액이 0 이하인 종목을 제외합니다."""
    base_currency = base_currency or settings.base_currency

    prepared = []
    for position in positions:
        currency = position_currency(position.currency, position.market)
        value = max(convert_to_base(position.total_value, currency, base_currency, fx_rate), 0.0)
        if value <= 0:
            continue
        prepared.append(PreparedPosition(
            symbol=position.symbol,
            base_value=value,
            return_rate=position.return_rate if math.isfinite(position.return_rate) else 0.0,
            sector=position.sector,
            asset_type=position.asset_type,
        ))
    return prepared


def round_weights(weights: Dict[str, float]) -> Dict[str, float]:
    """비중을 합계가 정확히 100.0인 0.1% 단위 퍼센트로 반올림합니다.

    각 비중을 0.1% 단위 정수로 내림한 뒤, 1000까지 모자란 만큼을 소수부가 큰 종목부터
    0.1%씩 (필요하면 한 바퀴 더) 배분합니다. 소수부가 같으면 입력 순서를 따릅니다.
    합계가 0 이하이면 균등 분배합니다.

    Args:
        weights: {symbol: 음수가 아닌 원시 가중치}

    Returns:
        {symbol: 퍼센트 (소수 1자리)}
    """
    if not weights:
        return {}

    symbols = list(weights)
    values = [max(weights[s], 0.0) if math.isfinite(weights[s]) else 0.0 for s in symbols]
    total = sum(values)

    if total <= 0:
        values = [1.0] * len(symbols)
        total = float(len(symbols))

    scaled = [v / total * WEIGHT_TOTAL for v in values]
    floored = [math.floor(s) for s in scaled]
    remainder = WEIGHT_TOTAL - sum(floored)

    order = sorted(range(len(symbols)), key=lambda i: scaled[i] - floored[i], reverse=True)

    index = 0
    while remainder > 0:
        floored[order[index % len(order)]] += 1
        remainder -= 1
        index += 1

    return {symbol: tenths / WEIGHT_FACTOR for symbol, tenths in zip(symbols, floored)}


def weight_tenths(weights: Dict[str, float]) -> int:
    """퍼센트 비중 합계를 0.1% 단위 정수로 반환합니다."""
    return sum(int(round(w * WEIGHT_FACTOR)) for w in weights.values())


def ensure_minimum_weight(weights: Dict[str, float], minimum: float) -> Dict[str, float]:
    """모든 종목이 최소 비중 이상이 되도록 올린 뒤 다시 정규화합니다."""
    if minimum <= 0:
        return weights

    adjusted = {symbol: max(value, minimum) for symbol, value in weights.items()}

    if weight_tenths(adjusted) == WEIGHT_TOTAL:
        return adjusted

    return round_weights(adjusted)


def distribute_group(weights: Dict[str, float], group: Sequence[PreparedPosition], share: float) -> None:
    """그룹 내 평가액 비율로 share를 나누어 weights에 더합니다."""
    if not group or share <= 0:
        return

    group_total = sum(item.base_value for item in group)
    if group_total <= 0:
        return

    for item in group:
        weights[item.symbol] = weights.get(item.symbol, 0.0) + share * item.base_value / group_total


def build_equal_preset(symbols: Sequence[str]) -> RebalancingPreset:
    return RebalancingPreset(
        id="equal",
        name="균등 분산",
        description="모든 종목에 동일한 비중(≈1/N)을 배분합니다.",
        target_weights=round_weights({symbol: 1.0 for symbol in symbols}),
        category="balanced",
        risk_level="medium",
    )


def build_current_preset(prepared: Sequence[PreparedPosition]) -> RebalancingPreset:
    return RebalancingPreset(
        id="current",
        name="현재 유지",
        description="현재 포트폴리오의 비중을 그대로 유지합니다.",
        target_weights=round_weights({item.symbol: item.base_value for item in prepared}),
        category="balanced",
        risk_level="medium",
        focus="status-quo",
    )


def build_defensive_preset(prepared: Sequence[PreparedPosition]) -> Optional[RebalancingPreset]:
    """방어 섹터/펀드/리츠에 60%, 나머지에 40% (그룹 내 평가액 비율)

    방어 자산이 없으면 None
    """
    defensive = [item for item in prepared if item.is_defensive]
    others = [item for item in prepared if not item.is_defensive]

    if not defensive:
        return None

    weights: Dict[str, float] = {}
    distribute_group(weights, defensive, 0.6)
    distribute_group(weights, others, 0.4)

    return RebalancingPreset(
        id="defensive",
        name="안정형",
        description="배당·필수소비재·유틸리티 등 방어형 자산에 60%를 배분합니다.",
        target_weights=round_weights(weights),
        category="defensive",
        risk_level="low",
        focus="stability",
    )


def build_aggressive_preset(prepared: Sequence[PreparedPosition]) -> Optional[RebalancingPreset]:
    """성장 섹터에 70%, 나머지에 30% (그룹 내 평가액 비율)

    성장 섹터 종목이 없으면 None
    """
    growth = [item for item in prepared if item.is_growth]
    others = [item for item in prepared if not item.is_growth]

    if not growth:
        return None

    weights: Dict[str, float] = {}
    distribute_group(weights, growth, 0.7)
    distribute_group(weights, others, 0.3)

    return RebalancingPreset(
        id="aggressive",
        name="공격형",
        description="성장 섹터와 고수익 자산에 70%를 배분하여 수익 극대화를 노립니다.",
        target_weights=round_weights(weights),
        category="aggressive",
        risk_level="high",
        focus="growth",
    )


def return_multiplier(return_rate: float, sector: Optional[str]) -> float:
    """최근 수익률 구간과 섹터에 따른 가중치 배수"""
    multiplier = 1.0

    if return_rate >= 20:
        multiplier += 0.35
    elif return_rate >= 10:
        multiplier += 0.2
    elif return_rate >= 0:
        multiplier += 0.05
    elif return_rate >= -5:
        multiplier -= 0.05
    else:
        multiplier -= 0.15

    if sector in GROWTH_SECTORS:
        multiplier += 0.05
    elif sector in DEFENSIVE_SECTORS:
        multiplier += 0.02

    return multiplier


def build_heuristic_preset(prepared: Sequence[PreparedPosition]) -> RebalancingPreset:
    """현재 비중에 수익률/섹터 배수를 적용한 AI 추천 프리셋

    종목당 최소 비중은 6종목 이상이면 3%, 아니면 5%입니다.
    """
    base_total = sum(item.base_value for item in prepared) or 1.0
    floor = 0.05 / len(prepared)

    weights = {}
    for item in prepared:
        normalized_base = item.base_value / base_total
        multiplier = return_multiplier(item.return_rate, item.sector)
        weights[item.symbol] = max(normalized_base * max(multiplier, 0.1), floor)

    minimum = 3.0 if len(prepared) >= 6 else 5.0

    return RebalancingPreset(
        id="ai-recommended",
        name="AI 추천",
        description="최근 성과와 섹터 분산을 반영해 균형 잡힌 목표 비중을 제안합니다.",
        target_weights=ensure_minimum_weight(round_weights(weights), minimum),
        category="ai",
        risk_level="medium",
        focus="momentum",
    )


def build_rebalancing_presets(
    positions: Sequence[Position],
    base_currency: Optional[str] = None,
    fx_rate: Optional[float] = None,
) -> List[RebalancingPreset]:
    """모든 리밸런싱 프리셋을 만듭니다.

    평가액이 있는 종목이 하나도 없으면 전체 종목의 균등 분산 프리셋만 반환합니다.

    Args:
        positions: 현재 포지션
        base_currency: 기준 통화
        fx_rate: USD/KRW 환율

    Returns:
        RebalancingPreset 리스트 (equal, current, defensive, aggressive, ai-recommended 순)
    """
    if not positions:
        return []

    prepared = prepare_positions(positions, base_currency, fx_rate)

    if not prepared:
        logger.warning("⚠️ 평가액이 있는 종목이 없어 균등 분산 프리셋만 생성합니다")
        return [build_equal_preset([p.symbol for p in positions])]

    presets = [
        build_equal_preset([item.symbol for item in prepared]),
        build_current_preset(prepared),
    ]

    defensive = build_defensive_preset(prepared)
    if defensive:
        presets.append(defensive)

    aggressive = build_aggressive_preset(prepared)
    if aggressive:
        presets.append(aggressive)

    presets.append(build_heuristic_preset(prepared))

    logger.debug(f"리밸런싱 프리셋 {len(presets)}개 생성: {[p.id for p in presets]}")
    return presets


def get_preset(presets: Sequence[RebalancingPreset], preset_id: str) -> RebalancingPreset:
    """ID로 프리셋을 찾습니다.

    Raises:
        ValueError: 해당 ID의 프리셋이 없는 경우
    """
    for preset in presets:
        if preset.id == preset_id:
            return preset
    raise ValueError(f"지원하지 않는 프리셋: {preset_id} (사용 가능: {', '.join(p.id for p in presets)})")
