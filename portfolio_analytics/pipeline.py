"""
조회 후 계산 파이프라인

1. 고유 종목(포지션 + 벤치마크 구성 지수)별 가격 시계열과 환율을 병렬로 조회하고 모두 기다립니다.
2. 조회가 끝난 입력 묶음 위에서 순수 계산기들을 실행합니다.
계산기 사이에 공유되는 가변 상태는 없습니다.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence

import pandas as pd
from loguru import logger
from pydantic import Field

from .advisory.alerts import evaluate_smart_alerts
from .advisory.tax import plan_tax_loss_harvest
from .backtest.portfolio_analyzer import PortfolioAnalyzer
from .backtest.simulator import BacktestSimulator
from .config import settings
from .ingest.bundle import PortfolioBundle
from .ingest.fx import SpotRateProvider
from .ingest.price_series import PriceSeriesStore
from .ingest.yfinance_source import fetch_daily_closes, fetch_spot_rate
from .models import (
    AdvisorInsight,
    AnalyticsModel,
    BacktestResult,
    BenchmarkResult,
    ContributionResponse,
    DailySnapshot,
    OptimizerResponse,
    PerformanceReport,
    PortfolioAnalysis,
    Position,
    PriceSeries,
    RebalancingAction,
    RebalancingPreset,
    SmartAlertResponse,
    SpotRate,
    TaxOptimizationResponse,
    Transaction,
)
from .performance.benchmark import benchmark_legs, compare_benchmarks
from .performance.contribution import contribution_breakdown
from .performance.periods import build_performance_report
from .strategies.optimizer import run_portfolio_optimization
from .strategies.presets import build_rebalancing_presets
from .strategies.rebalancing import generate_rebalancing_suggestions


class MarketData(AnalyticsModel):
    """조회가 끝난 시장 데이터 묶음"""

    series: Dict[str, Optional[PriceSeries]] = Field(default_factory=dict)
    benchmark_series: Dict[str, Optional[PriceSeries]] = Field(default_factory=dict)
    spot_rate: Optional[SpotRate] = None

    @property
    def fx_rate(self) -> Optional[float]:
        return self.spot_rate.rate if self.spot_rate else None


class PortfolioReport(AnalyticsModel):
    """모든 계산기 결과"""

    base_currency: str
    as_of: date
    fx: Optional[SpotRate] = None
    performance: PerformanceReport
    benchmarks: List[BenchmarkResult] = Field(default_factory=list)
    analysis: PortfolioAnalysis
    presets: List[RebalancingPreset] = Field(default_factory=list)
    rebalancing: List[RebalancingAction] = Field(default_factory=list)
    optimizer: OptimizerResponse
    contribution: ContributionResponse
    tax: TaxOptimizationResponse
    alerts: SmartAlertResponse
    backtest: Optional[BacktestResult] = None


def default_store() -> PriceSeriesStore:
    """yfinance를 fetcher로 사용하는 가격 저장소"""
    return PriceSeriesStore(fetcher=lambda symbol, start: fetch_daily_closes(symbol, start))


def default_fx_provider() -> SpotRateProvider:
    """yfinance를 fetcher로 사용하는 환율 조회기"""
    return SpotRateProvider(fetcher=fetch_spot_rate)


def required_start_date(transactions: Sequence[Transaction], as_of: date) -> date:
    """첫 거래일과 1년 전 중 이른 날짜 (모든 기간과 벤치마크를 덮는 시작일)"""
    one_year_ago = (pd.Timestamp(as_of) - pd.DateOffset(years=1)).date()
    if not transactions:
        return one_year_ago
    return min(min(tx.date for tx in transactions), one_year_ago)


def fetch_market_data(
    positions: Sequence[Position],
    start_date: date,
    store: Optional[PriceSeriesStore] = None,
    fx_provider: Optional[SpotRateProvider] = None,
    max_workers: Optional[int] = None,
) -> MarketData:
    """고유 종목별 시계열과 환율을 병렬 조회하고 모두 기다립니다.

    Args:
        positions: 포지션 (종목/시장)
        start_date: 필요한 시작 날짜
        store: 가격 저장소 (None이면 yfinance 기본 저장소)
        fx_provider: 환율 조회기 (None이면 yfinance 기본 조회기)
        max_workers: 스레드 수 (None이면 설정의 n_jobs)

    Returns:
        MarketData
    """
    store = store or default_store()
    fx_provider = fx_provider or default_fx_provider()

    requests: Dict[str, Optional[str]] = {}
    for position in positions:
        requests.setdefault(position.symbol, position.market)
    legs = benchmark_legs()
    for leg in legs:
        requests.setdefault(leg.symbol, leg.market)

    workers = max(1, max_workers or settings.n_jobs)
    logger.info(f"📥 시장 데이터 조회 시작: {len(requests)} 종목 + 환율, {workers} 작업")

    with ThreadPoolExecutor(max_workers=workers) as executor:
        rate_future = executor.submit(fx_provider.get_spot_rate, "USD", "KRW")
        futures = {
            symbol: executor.submit(store.get_series, symbol, market, start_date)
            for symbol, market in requests.items()
        }
        fetched = {symbol: future.result() for symbol, future in futures.items()}
        spot_rate = rate_future.result()

    position_symbols = {p.symbol for p in positions}
    leg_symbols = {leg.symbol for leg in legs}

    data = MarketData(
        series={s: v for s, v in fetched.items() if s in position_symbols},
        benchmark_series={s: v for s, v in fetched.items() if s in leg_symbols},
        spot_rate=spot_rate,
    )

    missing = [s for s, v in fetched.items() if v is None]
    if missing:
        logger.warning(f"⚠️ 시계열 없음: {', '.join(missing)}")
    logger.success(f"✅ 시장 데이터 조회 완료: 환율 {spot_rate.rate} ({spot_rate.source})")
    return data


def bundle_market_data(bundle: PortfolioBundle, store: Optional[PriceSeriesStore] = None) -> MarketData:
    """번들에 포함된 가격/환율로 MarketData를 만듭니다 (네트워크 조회 없음)."""
    store = store or PriceSeriesStore()
    markets = {p.symbol: p.market for p in bundle.positions}
    leg_symbols = {leg.symbol for leg in benchmark_legs()}

    series = {}
    benchmarks = {}
    for symbol, points in bundle.prices.items():
        stored = store.put(symbol, markets.get(symbol), points)
        if symbol in leg_symbols:
            benchmarks[symbol] = stored
        if symbol in markets or symbol not in leg_symbols:
            series[symbol] = stored

    spot_rate = None
    if bundle.fx_rate is not None:
        spot_rate = SpotRate(base="USD", quote="KRW", rate=bundle.fx_rate, source="cache")

    return MarketData(series=series, benchmark_series=benchmarks, spot_rate=spot_rate)


def build_portfolio_report(
    positions: List[Position],
    transactions: List[Transaction],
    market: MarketData,
    snapshots: Optional[Sequence[DailySnapshot]] = None,
    advisor_insight: Optional[AdvisorInsight] = None,
    base_currency: Optional[str] = None,
    as_of: Optional[date] = None,
    strategy: str = "baseline",
) -> PortfolioReport:
    """조회된 데이터 위에서 모든 계산기를 실행합니다.

    Args:
        positions: 현재 포지션
        transactions: 거래 로그
        market: 조회된 시장 데이터
        snapshots: 일별 평가액 (있으면 백테스트와 시계열 리스크 지표 사용)
        advisor_insight: AI 어드바이저 인사이트
        base_currency: 기준 통화
        as_of: 기준일 (None이면 오늘)
        strategy: 백테스트 전략

    Returns:
        PortfolioReport
    """
    base_currency = base_currency or settings.base_currency
    as_of = as_of or datetime.now().date()
    fx_rate = market.fx_rate

    logger.info(f"🚀 포트폴리오 리포트 생성: {len(positions)} 종목, 기준일 {as_of}")

    performance = build_performance_report(
        positions, transactions, market.series,
        fx_rate=fx_rate, base_currency=base_currency, as_of=as_of,
        benchmark_series=market.benchmark_series,
    )
    benchmarks = compare_benchmarks(market.benchmark_series, end_date=as_of, today=as_of)

    analysis = PortfolioAnalyzer(fx_rate=fx_rate, base_currency=base_currency).analyze(positions, snapshots)
    rebalancing = generate_rebalancing_suggestions(positions, base_currency=base_currency, fx_rate=fx_rate)

    backtest = None
    if snapshots:
        backtest = BacktestSimulator().run(snapshots, strategy=strategy, as_of=as_of)

    report = PortfolioReport(
        base_currency=base_currency,
        as_of=as_of,
        fx=market.spot_rate,
        performance=performance,
        benchmarks=benchmarks,
        analysis=analysis,
        presets=build_rebalancing_presets(positions, base_currency, fx_rate),
        rebalancing=rebalancing,
        optimizer=run_portfolio_optimization(positions, base_currency, fx_rate),
        contribution=contribution_breakdown(positions, base_currency, fx_rate),
        tax=plan_tax_loss_harvest(positions, base_currency=base_currency, fx_rate=fx_rate),
        alerts=evaluate_smart_alerts(
            positions, analysis=analysis, rebalancing=rebalancing,
            advisor_insight=advisor_insight, base_currency=base_currency, fx_rate=fx_rate,
        ),
        backtest=backtest,
    )

    logger.success("✅ 포트폴리오 리포트 생성 완료")
    return report


def run_bundle(bundle: PortfolioBundle, strategy: str = "baseline") -> PortfolioReport:
    """번들 파일 하나로 전체 리포트를 만듭니다."""
    as_of = date.fromisoformat(bundle.as_of) if bundle.as_of else None
    return build_portfolio_report(
        bundle.positions,
        bundle.transactions,
        bundle_market_data(bundle),
        snapshots=bundle.snapshots,
        advisor_insight=bundle.advisor_insight,
        base_currency=bundle.base_currency,
        as_of=as_of,
        strategy=strategy,
    )
