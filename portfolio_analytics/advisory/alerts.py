"""
스마트 알림 평가 모듈

포지션 상태, 리밸런싱 제안, 리스크 지표, AI 어드바이저 인사이트로부터
emergency / important / info 세 단계의 알림을 만듭니다.
알림은 요청마다 새로 만들어지며 저장하지 않습니다.
"""

import math
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from ..config import settings
from ..ingest.fx import convert_to_base, position_currency
from ..models import (
    AdvisorInsight,
    DailySnapshot,
    PortfolioAnalysis,
    Position,
    RebalancingAction,
    SmartAlert,
    SmartAlertResponse,
)
from ..backtest.portfolio_analyzer import PortfolioAnalyzer
from ..strategies.rebalancing import generate_rebalancing_suggestions


SEVERITY_ORDER = {"emergency": 0, "important": 1, "info": 2}

# 알림 ID 생성용 네임스페이스
ALERT_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "portfolio-analytics/smart-alerts")


def alert_id(severity: str, tag: str, symbol: Optional[str], created_at: datetime) -> str:
    """(심각도, 태그, 종목, 시각)이 같으면 같은 ID"""
    return str(uuid.uuid5(ALERT_NAMESPACE, f"{severity}:{tag}:{symbol or '-'}:{created_at.isoformat()}"))


def create_alert(
    severity: str,
    title: str,
    description: str,
    tag: str,
    created_at: datetime,
    symbol: Optional[str] = None,
    recommended_action: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
) -> SmartAlert:
    return SmartAlert(
        id=alert_id(severity, tag, symbol, created_at),
        severity=severity,
        title=title,
        description=description,
        symbol=symbol,
        tags=[tag],
        recommended_action=recommended_action,
        data=data or {},
        created_at=created_at,
    )


def evaluate_emergency_alerts(positions: Sequence[Position], now: datetime) -> List[SmartAlert]:
    """급락/급등 및 사용자 목표 수익률/손절 알림"""
    alerts = []

    for position in positions:
        rate = position.return_rate
        if not math.isfinite(rate):
            continue

        if rate <= settings.alert_drop_threshold:
            alerts.append(create_alert(
                "emergency",
                f"{position.symbol} 급락 경보",
                f"{position.symbol}이 {rate:.2f}% 하락했습니다. 손절 전략을 검토하세요.",
                "price-drop",
                now,
                symbol=position.symbol,
                recommended_action="손절 라인 점검 및 추가 하락 대비",
                data={"return_rate": rate, "total_value": position.total_value},
            ))
        elif rate >= settings.alert_surge_threshold:
            alerts.append(create_alert(
                "emergency",
                f"{position.symbol} 급등 알림",
                f"{position.symbol}이 {rate:.2f}% 상승했습니다. 목표 수익 실현 여부를 검토하세요.",
                "price-surge",
                now,
                symbol=position.symbol,
                recommended_action="익절 또는 비중 조정 검토",
                data={"return_rate": rate, "total_value": position.total_value},
            ))

        sell_alert = position.sell_alert
        if not sell_alert or not sell_alert.enabled or sell_alert.target_return_rate is None:
            continue

        target = sell_alert.target_return_rate
        if not math.isfinite(target):
            continue

        if rate >= target:
            alerts.append(create_alert(
                "emergency",
                f"{position.symbol} 목표 수익률 도달",
                f"{position.symbol}이 목표 수익률 {target:.2f}%에 도달했습니다.",
                "target-hit",
                now,
                symbol=position.symbol,
                recommended_action="익절 실행 또는 목표 재설정",
                data={"return_rate": rate, "target": target},
            ))
        elif sell_alert.trigger_once and rate <= -abs(target):
            alerts.append(create_alert(
                "emergency",
                f"{position.symbol} 손절 라인 접근",
                f"{position.symbol}이 손절 한계치에 근접했습니다. 방어 전략을 준비하세요.",
                "stop-loss",
                now,
                symbol=position.symbol,
                recommended_action="손절 실행 또는 비중 축소 검토",
                data={"return_rate": rate, "target": target},
            ))

    return alerts


def evaluate_important_alerts(
    positions: Sequence[Position],
    rebalancing: Sequence[RebalancingAction],
    analysis: PortfolioAnalysis,
    now: datetime,
    fx_rate: Optional[float] = None,
    insight: Optional[AdvisorInsight] = None,
) -> List[SmartAlert]:
    """리밸런싱, 변동성, 집중 위험, AI 어드바이저 실행 아이템 알림"""
    alerts = []

    if rebalancing:
        top = list(rebalancing[:3])
        alerts.append(create_alert(
            "important",
            "리밸런싱 권장",
            f"비중 조정이 필요한 종목: {', '.join(a.symbol for a in top)}",
            "rebalancing",
            now,
            recommended_action="리밸런싱 시뮬레이터를 실행하여 권장 비중을 확인하세요.",
            data={"suggestions": [a.to_dict() for a in top]},
        ))

    risk = analysis.risk_metrics
    if math.isfinite(risk.volatility) and risk.volatility > settings.alert_volatility_threshold:
        alerts.append(create_alert(
            "important",
            "포트폴리오 변동성 증가",
            f"최근 변동성이 {risk.volatility:.2f}%로 높습니다. 방어형 자산 비중을 고려하세요.",
            "risk",
            now,
            recommended_action="섹터 및 지역 분산을 재점검하세요.",
            data={"volatility": risk.volatility, "sharpe_ratio": risk.sharpe_ratio, "basis": risk.basis},
        ))

    values = {
        p.symbol: max(0.0, convert_to_base(p.total_value, position_currency(p.currency, p.market),
                                           analysis.base_currency, fx_rate))
        for p in positions
    }
    total = sum(values.values())
    threshold = settings.alert_concentration_threshold / 100
    concentrated = [p for p in positions if total > 0 and values[p.symbol] > 0 and values[p.symbol] / total >= threshold]

    if concentrated:
        alerts.append(create_alert(
            "important",
            "집중 위험 감지",
            f"{', '.join(p.symbol for p in concentrated)} 비중이 높습니다. 분산 투자를 검토하세요.",
            "concentration",
            now,
            recommended_action="비중이 높은 종목을 일부 매도하거나 다른 자산군을 편입하세요.",
            data={"concentrated_symbols": [
                {"symbol": p.symbol, "return_rate": p.return_rate, "weight": values[p.symbol] / total * 100}
                for p in concentrated
            ]},
        ))

    if insight and insight.action_items:
        summary = f"{insight.action_items[0]} 외 {len(insight.action_items) - 1}건의 실행 아이템"
        alerts.append(create_alert(
            "important",
            "AI 추천 액션",
            summary,
            "ai-action",
            now,
            recommended_action="AI 어드바이저 카드에서 상세 단계를 확인하세요.",
            data={"insight_id": insight.id},
        ))

    return alerts


def evaluate_info_alerts(overall_return_rate: float, now: datetime) -> List[SmartAlert]:
    """주간 성과 요약 (항상 생성)"""
    return [create_alert(
        "info",
        "주간 성과 요약",
        f"현재 포트폴리오 수익률은 {overall_return_rate:.2f}% 입니다.",
        "performance",
        now,
        data={"overall_return_rate": overall_return_rate},
    )]


def evaluate_smart_alerts(
    positions: Sequence[Position],
    analysis: Optional[PortfolioAnalysis] = None,
    rebalancing: Optional[Sequence[RebalancingAction]] = None,
    advisor_insight: Optional[AdvisorInsight] = None,
    history: Optional[Sequence[DailySnapshot]] = None,
    base_currency: Optional[str] = None,
    fx_rate: Optional[float] = None,
    now: Optional[datetime] = None,
) -> SmartAlertResponse:
    """모든 규칙을 평가해 심각도, 최신순으로 정렬된 알림을 반환합니다.

    Args:
        positions: 현재 포지션
        analysis: 포트폴리오 분석 결과 (None이면 계산)
        rebalancing: 리밸런싱 제안 (None이면 균등 비중 기준으로 계산)
        advisor_insight: 최근 AI 어드바이저 인사이트
        history: 평가액 이력 (분석을 직접 계산할 때 사용)
        base_currency: 기준 통화
        fx_rate: USD/KRW 환율
        now: 생성 시각 (테스트용)

    Returns:
        SmartAlertResponse
    """
    base_currency = base_currency or settings.base_currency
    now = now or datetime.now(timezone.utc)

    if analysis is None:
        analysis = PortfolioAnalyzer(fx_rate=fx_rate, base_currency=base_currency).analyze(positions, history)
    if rebalancing is None:
        rebalancing = generate_rebalancing_suggestions(positions, base_currency=base_currency, fx_rate=fx_rate)

    alerts = (
        evaluate_emergency_alerts(positions, now)
        + evaluate_important_alerts(positions, rebalancing, analysis, now, fx_rate, advisor_insight)
        + evaluate_info_alerts(analysis.overall_return_rate, now)
    )

    # 최신순 정렬 후 심각도 순 (안정 정렬)
    alerts.sort(key=lambda a: a.created_at, reverse=True)
    alerts.sort(key=lambda a: SEVERITY_ORDER[a.severity])

    counts = {severity: sum(1 for a in alerts if a.severity == severity) for severity in SEVERITY_ORDER}

    logger.info(f"🔔 스마트 알림 {len(alerts)}건: {counts}")
    return SmartAlertResponse(base_currency=base_currency, alerts=alerts, counts=counts, generated_at=now)
