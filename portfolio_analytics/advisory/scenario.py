"""
시나리오 분석 모듈

현재 포지션에 일괄 가격 변동(market_shift_pct)과 USD 환율 변동(usd_shift_pct)을 적용해
평가액과 손익을 예측합니다. 합계는 기준 통화 단위입니다.
"""

from typing import Dict, Optional, Sequence, Tuple

from loguru import logger

from ..config import settings
from ..ingest.fx import convert_to_base, position_currency
from ..models import (
    Position,
    ScenarioAnalysisResponse,
    ScenarioConfig,
    ScenarioPositionProjection,
    ScenarioResult,
)


# (시장 변동 %, USD 변동 %)
PRESET_DEFAULTS: Dict[str, Tuple[float, float]] = {
    "bullish": (5.0, 1.5),
    "bearish": (-5.0, -1.0),
    "volatile": (0.0, 3.0),
    "custom": (0.0, 0.0),
}


def apply_preset(config: ScenarioConfig) -> ScenarioConfig:
    """비어 있는 변동값을 프리셋 기본값으로 채웁니다. 명시된 값이 우선합니다."""
    if config.preset not in PRESET_DEFAULTS:
        raise ValueError(f"지원하지 않는 시나리오 프리셋: {config.preset}")

    market_default, usd_default = PRESET_DEFAULTS[config.preset]
    return config.model_copy(update={
        "market_shift_pct": market_default if config.market_shift_pct is None else config.market_shift_pct,
        "usd_shift_pct": usd_default if config.usd_shift_pct is None else config.usd_shift_pct,
    })


def project_position(position: Position, market_shift_pct: float, usd_shift_pct: float) -> ScenarioPositionProjection:
    """포지션 하나의 예측 가격/평가액/손익 (포지션 통화)"""
    currency = position_currency(position.currency, position.market)
    current_price = position.current_price or 0.0

    price_multiplier = 1 + market_shift_pct / 100
    currency_multiplier = 1 + usd_shift_pct / 100 if currency == "USD" else 1.0
    projected_price = current_price * price_multiplier * currency_multiplier

    current_value = position.shares * current_price
    projected_value = position.shares * projected_price
    profit_loss = projected_value - current_value

    return ScenarioPositionProjection(
        symbol=position.symbol,
        name=position.name,
        currency=currency,
        shares=position.shares,
        current_price=current_price,
        projected_price=projected_price,
        current_value=current_value,
        projected_value=projected_value,
        projected_profit_loss=profit_loss,
        projected_return_rate=profit_loss / current_value * 100 if current_value > 0 else 0.0,
    )


def run_scenario_analysis(
    positions: Sequence[Position],
    config: Optional[ScenarioConfig] = None,
    base_currency: Optional[str] = None,
    fx_rate: Optional[float] = None,
) -> ScenarioAnalysisResponse:
    """시나리오 분석을 실행합니다.

    Args:
        positions: 현재 포지션
        config: 시나리오 설정 (None이면 custom 0/0)
        base_currency: 기준 통화
        fx_rate: USD/KRW 환율

    Returns:
        ScenarioAnalysisResponse (포지션은 예측 손익 내림차순)
    """
    base_currency = base_currency or settings.base_currency
    config = apply_preset(config or ScenarioConfig())

    projections = [project_position(p, config.market_shift_pct, config.usd_shift_pct) for p in positions]

    current_total = sum(
        convert_to_base(p.current_value, p.currency, base_currency, fx_rate) for p in projections
    )
    projected_total = sum(
        convert_to_base(p.projected_value, p.currency, base_currency, fx_rate) for p in projections
    ) + config.additional_contribution

    profit_loss = projected_total - current_total

    result = ScenarioResult(
        current_total_value=current_total,
        projected_total_value=projected_total,
        projected_return_rate=profit_loss / current_total * 100 if current_total > 0 else 0.0,
        projected_profit_loss=profit_loss,
        additional_contribution=config.additional_contribution,
        market_shift_pct=config.market_shift_pct,
        usd_shift_pct=config.usd_shift_pct,
        positions=sorted(projections, key=lambda p: p.projected_profit_loss, reverse=True),
    )

    logger.info(
        f"🔮 시나리오 [{config.preset}] 시장 {config.market_shift_pct:+.1f}%, USD {config.usd_shift_pct:+.1f}% "
        f"→ 예상 손익 {profit_loss:,.0f} {base_currency}"
    )
    return ScenarioAnalysisResponse(config=config, result=result)
