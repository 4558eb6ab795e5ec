"""
포트폴리오 최적화 추천 모듈

균등 분산, 성장 지향, 방어형, 다각화 강화 네 가지 목표 비중을 점수 기반으로 만들고,
각각의 기대 수익률/위험과 리밸런싱 액션을 계산합니다.
"""

from collections import Counter
from typing import Callable, Dict, List, Optional, Sequence

from loguru import logger

from ..config import settings
from ..models import OptimizerResponse, Position, RebalancingRecommendation
from .presets import PreparedPosition, prepare_positions, round_weights
from .rebalancing import generate_rebalancing_suggestions


def compute_scores(prepared: Sequence[PreparedPosition],
                   score_fn: Callable[[PreparedPosition], float]) -> Dict[str, float]:
    """양수 점수를 가진 종목만 남깁니다."""
    scores = {}
    for item in prepared:
        value = max(0.0, score_fn(item))
        if value > 0:
            scores[item.symbol] = value
    return scores


def weight_by_performance(prepared: Sequence[PreparedPosition]) -> Dict[str, float]:
    return compute_scores(prepared, lambda item: max(0.1, item.return_rate + 5))


def weight_by_risk_adjusted(prepared: Sequence[PreparedPosition]) -> Dict[str, float]:
    def score(item: PreparedPosition) -> float:
        base = max(0.1, item.return_rate + 10)
        risk_penalty = max(1.0, abs(item.return_rate) / 10 + 1)
        type_modifier = 1.2 if item.asset_type in ("etf", "fund", "reit") else 1.0
        return base / risk_penalty * type_modifier

    return compute_scores(prepared, score)


def weight_by_diversification(prepared: Sequence[PreparedPosition]) -> Dict[str, float]:
    sector_counts = Counter(item.sector or "other" for item in prepared)
    return compute_scores(
        prepared,
        lambda item: (item.base_value if item.base_value > 0 else 0.1) / sector_counts[item.sector or "other"],
    )


# (id, 이름, 요약, 근거, 점수 함수)
STRATEGIES = (
    (
        "equal-balance",
        "균등 분산",
        "모든 종목에 동일한 비중을 부여해 편중을 줄입니다.",
        ["과도한 집중을 줄이고, 리밸런싱 시점 파악이 쉬워집니다."],
        lambda prepared: {item.symbol: 1.0 for item in prepared},
    ),
    (
        "growth-focus",
        "성장 지향",
        "최근 성과가 좋은 자산 비중을 확대한 전략입니다.",
        [
            "수익률이 높은 종목에 더 많은 비중을 투자해 모멘텀을 활용합니다.",
            "성과 기반으로 자동 가중치를 계산했습니다.",
        ],
        weight_by_performance,
    ),
    (
        "defensive-shield",
        "방어형",
        "변동성이 높은 자산의 비중을 줄여 하방 위험을 낮추는 전략입니다.",
        [
            "수익률 대비 변동성을 고려해 안정적인 자산에 가중치를 부여했습니다.",
            "ETF·REIT 비중을 높여 시장 하락 시 방어력을 강화합니다.",
        ],
        weight_by_risk_adjusted,
    ),
    (
        "diversified-mix",
        "다각화 강화",
        "섹터·지역 편중도를 완화해 장기 리스크를 낮추는 전략입니다.",
        [
            "섹터별 비중을 균등화해 특정 산업 의존도를 줄입니다.",
            "집중된 종목을 일부 매도하고 부족한 섹터를 채웁니다.",
        ],
        weight_by_diversification,
    ),
)


def expected_return_and_risk(target_weights: Dict[str, float],
                             prepared: Sequence[PreparedPosition]) -> tuple:
    """기대 수익률 Σ w·r, 기대 위험 Σ w·max(5, |r|)"""
    by_symbol = {item.symbol: item for item in prepared}
    expected_return = 0.0
    expected_risk = 0.0

    for symbol, weight in target_weights.items():
        item = by_symbol.get(symbol)
        if item is None:
            continue
        expected_return += weight / 100 * item.return_rate
        expected_risk += weight / 100 * max(5.0, abs(item.return_rate))

    return round(expected_return, 2), round(expected_risk, 2)


def run_portfolio_optimization(
    positions: Sequence[Position],
    base_currency: Optional[str] = None,
    fx_rate: Optional[float] = None,
) -> OptimizerResponse:
    """최적화 추천을 생성합니다.

    Args:
        positions: 현재 포지션
        base_currency: 기준 통화
        fx_rate: USD/KRW 환율

    Returns:
        OptimizerResponse (평가액이 있는 종목이 없으면 빈 추천)
    """
    base_currency = base_currency or settings.base_currency
    prepared = prepare_positions(positions, base_currency, fx_rate)
    total = sum(item.base_value for item in prepared)

    if not prepared or total <= 0:
        logger.warning("⚠️ 평가액이 있는 종목이 없어 최적화 추천을 생략합니다")
        return OptimizerResponse(base_currency=base_currency)

    logger.info(f"🧮 최적화 추천 계산: {len(prepared)} 종목")

    current = {item.symbol: round(item.base_value / total * 100, 2) for item in prepared}
    held = [p for p in positions if p.symbol in current]

    recommendations: List[RebalancingRecommendation] = []
    for strategy_id, name, summary, rationale, score_fn in STRATEGIES:
        scores = score_fn(prepared)
        if not scores:
            continue

        target_weights = round_weights(scores)
        expected_return, expected_risk = expected_return_and_risk(target_weights, prepared)
        actions = generate_rebalancing_suggestions(
            held, target_allocation=target_weights, base_currency=base_currency, fx_rate=fx_rate,
        )

        recommendations.append(RebalancingRecommendation(
            id=strategy_id,
            name=name,
            summary=summary,
            rationale=rationale,
            target_weights=target_weights,
            expected_return=expected_return,
            expected_risk=expected_risk,
            rebalancing=actions,
        ))

    logger.success(f"✅ 최적화 추천 {len(recommendations)}건 생성")
    return OptimizerResponse(base_currency=base_currency, current_weights=current, recommendations=recommendations)
