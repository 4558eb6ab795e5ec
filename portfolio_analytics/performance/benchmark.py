"""
벤치마크 비교 모듈

단일 지수(KOSPI, S&P 500)와 고정 비중 혼합 바스켓(60/40 글로벌)의 수익률을 계산하고,
포트폴리오 기간 성과와 같은 구간의 벤치마크 성과를 만듭니다.
혼합 바스켓은 합성 가격이 아니라 구간별 수익률의 가중합으로 계산합니다.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Mapping, Optional, Tuple

import pandas as pd
from loguru import logger

from ..ingest.price_series import first_on_or_after, most_recent, price_on_or_before
from ..models import BenchmarkPeriodPerformance, BenchmarkResult, PriceSeries


MIN_RANGE_DAYS = 30


@dataclass(frozen=True)
class BenchmarkLeg:
    symbol: str
    weight: float = 1.0
    market: str = "GLOBAL"


@dataclass(frozen=True)
class BenchmarkTarget:
    """벤치마크 정의 (구성 지수와 고정 비중)"""

    id: str
    name: str
    symbol: str
    currency: str
    legs: Tuple[BenchmarkLeg, ...] = field(default_factory=tuple)

    @property
    def is_composite(self) -> bool:
        return len(self.legs) > 1


BENCHMARKS: Tuple[BenchmarkTarget, ...] = (
    BenchmarkTarget("KOSPI", "KOSPI", "^KS11", "KRW", (BenchmarkLeg("^KS11", 1.0, "KR"),)),
    BenchmarkTarget("SNP_500", "S&P 500", "^GSPC", "USD", (BenchmarkLeg("^GSPC", 1.0, "US"),)),
    BenchmarkTarget(
        "GLOBAL_60_40",
        "60/40 글로벌 포트폴리오",
        "0.6×S&P 500 + 0.4×BND",
        "USD",
        (BenchmarkLeg("^GSPC", 0.6, "US"), BenchmarkLeg("BND", 0.4, "US")),
    ),
)

# 기간별 비교에는 단일 지수만 사용
PERIOD_BENCHMARKS: Tuple[BenchmarkTarget, ...] = tuple(b for b in BENCHMARKS if not b.is_composite)


def benchmark_legs() -> List[BenchmarkLeg]:
    """조회가 필요한 (중복 없는) 구성 지수 목록"""
    seen = {}
    for target in BENCHMARKS:
        for leg in target.legs:
            seen.setdefault(leg.symbol, leg)
    return list(seen.values())


def normalize_range(start_date: Optional[date] = None, end_date: Optional[date] = None,
                    today: Optional[date] = None) -> Tuple[date, date]:
    """비교 구간을 정규화합니다.

    기본값은 최근 1년이며, 구간이 30일보다 짧으면 종료일 기준 1년 전부터로 넓힙니다.
    """
    today = today or datetime.now().date()
    end = end_date or today
    start = start_date or (pd.Timestamp(today) - pd.DateOffset(years=1)).date()

    if (end - start).days < MIN_RANGE_DAYS:
        start = (pd.Timestamp(end) - pd.DateOffset(years=1)).date()

    return start, end


def leg_return(series: Optional[PriceSeries], start: date) -> Tuple[Optional[float], Optional[date], Optional[float]]:
    """단일 구성 지수의 수익률(%)

    시작 가격은 시작일 이전(포함) 가장 최근 종가, 없으면 시작일 이후 첫 종가입니다.

    Returns:
        (수익률 또는 None, 실제 시작일, 마지막 가격)
    """
    start_point = price_on_or_before(series, start) or first_on_or_after(series, start)
    end_point = most_recent(series)

    if start_point is None or end_point is None or start_point.close <= 0:
        return None, None, end_point.close if end_point else None

    return (end_point.close - start_point.close) / start_point.close * 100, start_point.date, end_point.close


def compare_benchmark(target: BenchmarkTarget, series_by_symbol: Mapping[str, Optional[PriceSeries]],
                      start: date) -> BenchmarkResult:
    """하나의 벤치마크 수익률을 계산합니다.

    구성 지수 일부의 데이터가 없으면 남은 구성 지수의 비중을 다시 정규화하여 계산하고
    note에 부분 데이터임을 남깁니다. 모든 구성 지수가 없으면 return_rate는 None입니다.
    """
    available = []
    missing = []
    sources = []
    since = start
    last_price = None

    for leg in target.legs:
        series = series_by_symbol.get(leg.symbol)
        rate, effective, last = leg_return(series, start)
        if rate is None:
            missing.append(leg.symbol)
            continue
        available.append((leg, rate))
        sources.append(series.source)
        since = max(since, effective) if target.is_composite else effective
        last_price = last

    if not available:
        logger.warning(f"⚠️ {target.name}: 벤치마크 데이터 없음")
        return BenchmarkResult(
            id=target.id,
            name=target.name,
            symbol=target.symbol,
            currency=target.currency,
            return_rate=None,
            since=start,
            last_price=None,
            source="fallback",
            note="벤치마크 데이터를 가져오지 못했습니다.",
        )

    weight_sum = sum(leg.weight for leg, _ in available)
    return_rate = sum(leg.weight / weight_sum * rate for leg, rate in available)

    note = None
    if missing:
        note = f"구성 지수 중 일부 데이터가 부족하여 추정값으로 계산되었습니다 (누락: {', '.join(missing)})."
        logger.warning(f"⚠️ {target.name}: 부분 데이터로 계산 ({', '.join(missing)} 누락)")

    if missing:
        source = "fallback"
    elif all(s == "live" for s in sources):
        source = "live"
    else:
        source = "cache"

    return BenchmarkResult(
        id=target.id,
        name=target.name,
        symbol=target.symbol,
        currency=target.currency,
        return_rate=round(return_rate, 4),
        since=since,
        last_price=None if target.is_composite else last_price,
        source=source,
        note=note,
    )


def compare_benchmarks(
    series_by_symbol: Mapping[str, Optional[PriceSeries]],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    today: Optional[date] = None,
) -> List[BenchmarkResult]:
    """모든 벤치마크의 수익률을 계산합니다.

    Args:
        series_by_symbol: {구성 지수 심볼: 가격 시계열}
        start_date: 비교 시작일
        end_date: 비교 종료일
        today: 기준일 (테스트용)

    Returns:
        BenchmarkResult 리스트 (BENCHMARKS 순서)
    """
    start, end = normalize_range(start_date, end_date, today)
    logger.info(f"📈 벤치마크 비교: {start} ~ {end}")

    results = [compare_benchmark(target, series_by_symbol, start) for target in BENCHMARKS]

    logger.success(f"✅ 벤치마크 {len(results)}건 계산 완료")
    return results


def benchmark_period_performance(
    series_by_symbol: Mapping[str, Optional[PriceSeries]],
    period_starts: Dict[str, date],
    end: date,
) -> List[BenchmarkPeriodPerformance]:
    """포트폴리오 기간과 같은 구간의 지수별 성과

    최근 가격이 없는 지수는 건너뜁니다. 시작 가격이 없으면 해당 구간의 return_rate는 None입니다.
    """
    results = []

    for target in PERIOD_BENCHMARKS:
        series = series_by_symbol.get(target.symbol)
        end_point = most_recent(series)
        if end_point is None or end_point.close <= 0:
            continue

        for period, start in period_starts.items():
            start_point = price_on_or_before(series, start)

            if start_point is None or start_point.close <= 0:
                results.append(BenchmarkPeriodPerformance(
                    benchmark_id=target.id,
                    benchmark_name=target.name,
                    symbol=target.symbol,
                    currency=target.currency,
                    period=period,
                    start_date=start,
                    effective_start_date=None,
                    end_date=end_point.date,
                    end_value=end_point.close,
                ))
                continue

            change = end_point.close - start_point.close
            results.append(BenchmarkPeriodPerformance(
                benchmark_id=target.id,
                benchmark_name=target.name,
                symbol=target.symbol,
                currency=target.currency,
                period=period,
                start_date=start,
                effective_start_date=start_point.date,
                end_date=end_point.date,
                start_value=start_point.close,
                end_value=end_point.close,
                absolute_change=change,
                return_rate=round(change / start_point.close * 100, 4),
            ))

    return results
