"""
기간별 포트폴리오 성과 계산 모듈

1D, 1W, 1M, 3M, YTD, 1Y, ALL 구간마다 시작/종료 평가액, 절대 변화, 수익률,
연율화 수익률(달력일 365 기준)을 계산합니다.
"""

from datetime import date, datetime
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd
from loguru import logger

from ..config import settings
from ..ingest.fx import convert_to_base, position_currency
from ..ingest.price_series import most_recent, price_on_or_before
from ..models import (
    PERIOD_IDS,
    PerformancePeriod,
    PerformanceReport,
    Position,
    PositionSeries,
    PriceSeries,
    Transaction,
)
from .shares import check_non_negative, group_by_symbol, shares_as_of, sort_transactions


PERIOD_LABELS = {
    "1D": "1일",
    "1W": "1주",
    "1M": "1개월",
    "3M": "3개월",
    "YTD": "YTD",
    "1Y": "1년",
    "ALL": "전체",
}

MAX_POSITION_SERIES_POINTS = 180


def nominal_start_date(period: str, end: date, earliest: date) -> date:
    """구간의 명목 시작 날짜를 계산합니다."""
    ts = pd.Timestamp(end)

    if period == "1D":
        return (ts - pd.DateOffset(days=1)).date()
    if period == "1W":
        return (ts - pd.DateOffset(days=7)).date()
    if period == "1M":
        return (ts - pd.DateOffset(months=1)).date()
    if period == "3M":
        return (ts - pd.DateOffset(months=3)).date()
    if period == "YTD":
        return date(end.year, 1, 1)
    if period == "1Y":
        return (ts - pd.DateOffset(years=1)).date()
    if period == "ALL":
        return earliest

    raise ValueError(f"지원하지 않는 기간: {period}")


def resolve_period_starts(end: date, earliest: date) -> Dict[str, Tuple[date, date]]:
    """구간별 (명목 시작일, 실제 시작일)을 반환합니다.

    명목 시작일이 첫 거래일보다 앞서면 첫 거래일로 당깁니다.
    """
    starts = {}
    for period in PERIOD_IDS:
        nominal = nominal_start_date(period, end, earliest)
        starts[period] = (nominal, max(nominal, earliest))
    return starts


def _round(value: Optional[float], digits: int = 2) -> Optional[float]:
    return None if value is None else round(value, digits)


def annualized_return(start_value: float, end_value: float, elapsed_days: int,
                      days_per_year: Optional[int] = None) -> Optional[float]:
    """((end/start)^(365/days) - 1) * 100, 계산할 수 없으면 None"""
    days_per_year = days_per_year or settings.calendar_days
    if elapsed_days <= 0 or start_value <= 0 or end_value <= 0:
        return None
    return ((end_value / start_value) ** (days_per_year / elapsed_days) - 1) * 100


def current_portfolio_value(
    positions: Iterable[Position],
    series_by_symbol: Mapping[str, Optional[PriceSeries]],
    fx_rate: Optional[float],
    base_currency: str,
) -> Tuple[float, Optional[date]]:
    """현재 평가액(기준 통화)과 가장 최근 평가 날짜를 계산합니다.

    현재가가 없으면 캐시된 가장 최근 종가를 사용합니다.
    """
    total = 0.0
    latest: Optional[date] = None

    for position in positions:
        recent = most_recent(series_by_symbol.get(position.symbol))
        if position.current_price is not None and position.current_price > 0:
            price = position.current_price
        else:
            price = recent.close if recent else None

        if not price or price <= 0:
            logger.warning(f"⚠️ {position.symbol}: 현재가를 알 수 없어 평가액에서 제외")
            continue

        if recent and (latest is None or recent.date > latest):
            latest = recent.date

        currency = position_currency(position.currency, position.market)
        total += convert_to_base(position.shares * price, currency, base_currency, fx_rate)

    return total, latest


def calculate_period_performance(
    positions: List[Position],
    transactions: List[Transaction],
    series_by_symbol: Mapping[str, Optional[PriceSeries]],
    fx_rate: Optional[float] = None,
    base_currency: Optional[str] = None,
    as_of: Optional[date] = None,
    strict: Optional[bool] = None,
) -> Dict[str, PerformancePeriod]:
    """7개 고정 구간의 포트폴리오 성과를 계산합니다.

    Args:
        positions: 현재 보유 포지션
        transactions: 전체 거래 로그
        series_by_symbol: {symbol: 가격 시계열}
        fx_rate: USD/KRW 환율 (None이면 변환 없이 통과)
        base_currency: 기준 통화 (None이면 설정값)
        as_of: 종료 날짜 (None이면 오늘)
        strict: 음수 주식 수를 예외로 올릴지 (None이면 설정의 strict_integrity)

    Returns:
        {기간 ID: PerformancePeriod}
    """
    base_currency = base_currency or settings.base_currency
    end = as_of or datetime.now().date()
    strict = settings.strict_integrity if strict is None else strict

    ordered = sort_transactions(transactions)
    earliest = ordered[0].date if ordered else end
    by_symbol = group_by_symbol(ordered)

    if fx_rate is None:
        logger.warning("⚠️ 환율 정보가 없어 통화 변환 없이 합산합니다")

    end_value, _ = current_portfolio_value(positions, series_by_symbol, fx_rate, base_currency)

    logger.debug(f"기간 성과 계산: 포지션 {len(positions)}개, 거래 {len(ordered)}건, 기준일 {end}")

    results: Dict[str, PerformancePeriod] = {}
    for period, (nominal, start) in resolve_period_starts(end, earliest).items():
        start_value = 0.0
        missing_prices: List[str] = []
        integrity_faults: List[str] = []

        for position in positions:
            shares = shares_as_of(by_symbol.get(position.symbol, []), start)
            if not check_non_negative(position.symbol, shares, start, strict):
                integrity_faults.append(position.symbol)
                continue
            if shares <= 0:
                continue

            point = price_on_or_before(series_by_symbol.get(position.symbol), start)
            if point is None or point.close <= 0:
                missing_prices.append(position.symbol)
                continue

            currency = position_currency(position.currency, position.market)
            start_value += convert_to_base(shares * point.close, currency, base_currency, fx_rate)

        absolute_change = end_value - start_value
        return_rate = absolute_change / start_value * 100 if start_value > 0 else None
        raw_days = (end - start).days

        notes = []
        if missing_prices:
            notes.append(f"시작 가격 없음: {', '.join(missing_prices)}")
        if integrity_faults:
            notes.append(f"주식 수 불일치로 제외: {', '.join(integrity_faults)}")
        if start_value <= 0:
            notes.append("시작 시점 보유 자산이 없어 수익률을 계산할 수 없습니다.")

        results[period] = PerformancePeriod(
            id=period,
            label=PERIOD_LABELS[period],
            nominal_start_date=nominal,
            start_date=start,
            end_date=end,
            effective_start_date=start if start_value > 0 else None,
            period_days=max(1, raw_days + 1),
            start_value=round(start_value, 2),
            end_value=round(end_value, 2),
            absolute_change=round(absolute_change, 2),
            return_rate=_round(return_rate),
            annualized_return=_round(annualized_return(start_value, end_value, raw_days)),
            note=" / ".join(notes) if notes else None,
        )

    return results


def build_position_series(
    positions: Iterable[Position],
    series_by_symbol: Mapping[str, Optional[PriceSeries]],
    max_points: int = MAX_POSITION_SERIES_POINTS,
) -> List[PositionSeries]:
    """포지션별 최근 종가 시계열 (최대 max_points개)"""
    result = []
    for position in positions:
        series = series_by_symbol.get(position.symbol)
        if not series or not series.points:
            continue
        result.append(PositionSeries(
            symbol=position.symbol,
            currency=position_currency(position.currency, position.market),
            series=list(series.points[-max_points:]),
        ))
    return result


def build_performance_report(
    positions: List[Position],
    transactions: List[Transaction],
    series_by_symbol: Mapping[str, Optional[PriceSeries]],
    fx_rate: Optional[float] = None,
    base_currency: Optional[str] = None,
    as_of: Optional[date] = None,
    benchmark_series: Optional[Mapping[str, Optional[PriceSeries]]] = None,
    strict: Optional[bool] = None,
) -> PerformanceReport:
    """기간 성과, 벤치마크 기간 성과, 포지션 시계열을 묶은 리포트를 만듭니다."""
    from .benchmark import benchmark_period_performance

    base_currency = base_currency or settings.base_currency
    end = as_of or datetime.now().date()

    logger.info(f"📊 성과 리포트 생성 시작: {end}")

    periods = calculate_period_performance(
        positions, transactions, series_by_symbol,
        fx_rate=fx_rate, base_currency=base_currency, as_of=end, strict=strict,
    )
    current_value, latest = current_portfolio_value(positions, series_by_symbol, fx_rate, base_currency)

    starts = {period_id: period.start_date for period_id, period in periods.items()}
    benchmarks = benchmark_period_performance(benchmark_series or {}, starts, end)

    notes = []
    if fx_rate is None:
        notes.append("환율 정보가 없어 통화 변환 없이 합산했습니다.")

    report = PerformanceReport(
        base_currency=base_currency,
        periods=periods,
        benchmarks=benchmarks,
        latest_valuation_date=latest,
        current_value=round(current_value, 2),
        position_series=build_position_series(positions, series_by_symbol),
        notes=notes,
    )

    logger.success(f"✅ 성과 리포트 생성 완료: {len(periods)} 구간, 벤치마크 {len(benchmarks)}건")
    return report
