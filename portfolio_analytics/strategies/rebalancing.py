"""
리밸런싱 액션 생성 모듈

목표 비중과 현재 비중의 차이를 매수/매도/유지 액션과 금액으로 변환합니다.
"""

from typing import Dict, List, Mapping, Optional, Sequence

from loguru import logger

from ..config import settings
from ..models import Position, RebalancingAction
from .presets import prepare_positions


def current_weights(positions: Sequence[Position], base_currency: Optional[str] = None,
                    fx_rate: Optional[float] = None) -> Dict[str, float]:
    """기준 통화 평가액 기준 현재 비중 (%)"""
    prepared = prepare_positions(positions, base_currency, fx_rate)
    total = sum(item.base_value for item in prepared)
    if total <= 0:
        return {}
    return {item.symbol: item.base_value / total * 100 for item in prepared}


def build_rebalancing_actions(
    target_weights: Mapping[str, float],
    current: Mapping[str, float],
    total_value: float,
    epsilon: Optional[float] = None,
) -> List[RebalancingAction]:
    """목표 비중을 종목별 액션으로 변환합니다.

    목표가 현재보다 epsilon 넘게 크면 buy, 작으면 sell, 나머지는 hold입니다.
    amount = (목표 - 현재) / 100 * 총 평가액 (매도는 음수).

    Args:
        target_weights: {symbol: 목표 비중 %}
        current: {symbol: 현재 비중 %}
        total_value: 기준 통화 총 평가액
        epsilon: 최소 비중 차이 (%p)

    Returns:
        종목별 RebalancingAction (목표 비중 순서, 이후 목표에 없는 현재 종목)
    """
    epsilon = settings.rebalance_epsilon if epsilon is None else epsilon

    symbols = list(target_weights) + [s for s in current if s not in target_weights]
    actions = []

    for symbol in symbols:
        target = target_weights.get(symbol, 0.0)
        now = current.get(symbol, 0.0)
        delta = target - now

        if delta > epsilon:
            action = "buy"
            rationale = f"목표 비중 미달 ({abs(delta):.1f}%p)"
        elif delta < -epsilon:
            action = "sell"
            rationale = f"목표 비중 초과 ({abs(delta):.1f}%p)"
        else:
            action = "hold"
            rationale = "목표 비중과 근접"

        actions.append(RebalancingAction(
            symbol=symbol,
            action=action,
            current_weight=round(now, 2),
            target_weight=round(target, 2),
            weight_delta=round(delta, 2),
            amount=round(delta / 100 * total_value, 2),
            rationale=rationale,
        ))

    return actions


def generate_rebalancing_suggestions(
    positions: Sequence[Position],
    target_allocation: Optional[Mapping[str, float]] = None,
    tolerance: Optional[float] = None,
    base_currency: Optional[str] = None,
    fx_rate: Optional[float] = None,
) -> List[RebalancingAction]:
    """목표 비중(없으면 균등 100/N) 대비 리밸런싱 제안

    허용 오차 이내의 종목(hold)은 제외하고, 비중 차이 절댓값이 큰 순으로 정렬합니다.
    """
    tolerance = settings.rebalance_tolerance if tolerance is None else tolerance

    if not positions:
        return []

    prepared = prepare_positions(positions, base_currency, fx_rate)
    total = sum(item.base_value for item in prepared)
    current = current_weights(positions, base_currency, fx_rate)

    if target_allocation is None:
        targets = {position.symbol: 100 / len(positions) for position in positions}
    else:
        targets = {position.symbol: target_allocation.get(position.symbol, 0.0) for position in positions}

    actions = build_rebalancing_actions(targets, current, total, epsilon=tolerance)
    suggestions = [a for a in actions if a.action != "hold"]
    suggestions.sort(key=lambda a: abs(a.weight_delta), reverse=True)

    logger.debug(f"리밸런싱 제안 {len(suggestions)}건 (허용 오차 ±{tolerance}%p)")
    return suggestions
