"""
포트폴리오 분석 데이터 모델

입력(포지션, 거래, 가격 시계열)과 각 계산기의 결과를 pydantic 값 객체로 정의합니다.
모든 결과는 요청마다 새로 계산되며 제자리에서 변경되지 않습니다 (frozen).
퍼센트 필드는 ×100 단위입니다 (5.23 == 5.23%).
"""

from datetime import date as Date, datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


Market = Literal["US", "KR", "GLOBAL"]
Currency = Literal["USD", "KRW"]
AssetType = Literal["stock", "etf", "reit", "fund"]
SeriesSource = Literal["live", "cache", "fallback"]
TransactionType = Literal["buy", "sell", "dividend"]
PeriodId = Literal["1D", "1W", "1M", "3M", "YTD", "1Y", "ALL"]
RebalanceAction = Literal["buy", "sell", "hold"]
BacktestStrategy = Literal["baseline", "growth", "defensive", "diversified", "equal"]
TaxAction = Literal["harvest-loss", "offset-gain", "monitor"]
AlertSeverity = Literal["emergency", "important", "info"]
ScenarioPreset = Literal["bullish", "bearish", "volatile", "custom"]

PERIOD_IDS: Tuple[str, ...] = ("1D", "1W", "1M", "3M", "YTD", "1Y", "ALL")


class AnalyticsModel(BaseModel):
    """공통 모델 설정 (camelCase 직렬화, 불변)"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_dict(self) -> Dict[str, Any]:
        """JSON 직렬화 가능한 camelCase 딕셔너리를 반환합니다."""
        return self.model_dump(mode="json", by_alias=True)


# ============================================================================
# 입력 모델
# ============================================================================


class SellAlert(AnalyticsModel):
    """사용자 정의 목표 수익률 / 손절 알림 설정"""

    enabled: bool = False
    target_return_rate: Optional[float] = None
    trigger_once: bool = False


class Position(AnalyticsModel):
    """보유 종목 스냅샷

    파생 필드(total_value, total_invested, profit_loss, return_rate)가 비어 있으면
    shares, average_price, current_price로부터 채웁니다.
    """

    symbol: str = Field(..., min_length=1)
    name: Optional[str] = None
    market: Market = "US"
    currency: Currency = "USD"
    shares: float = 0.0
    average_price: float = 0.0
    current_price: Optional[float] = None
    total_value: float = 0.0
    total_invested: float = 0.0
    return_rate: float = 0.0
    profit_loss: float = 0.0
    sector: Optional[str] = None
    asset_type: AssetType = "stock"
    sell_alert: Optional[SellAlert] = None
    transaction_count: int = 0

    @model_validator(mode="before")
    @classmethod
    def fill_derived_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        values = dict(data)

        def pick(*keys):
            for key in keys:
                if values.get(key) is not None:
                    return values[key]
            return None

        shares = float(pick("shares") or 0.0)
        average_price = float(pick("average_price", "averagePrice") or 0.0)
        current_price = pick("current_price", "currentPrice")

        total_value = pick("total_value", "totalValue")
        if total_value is None:
            total_value = shares * float(current_price) if current_price is not None else 0.0
            values["total_value"] = total_value

        total_invested = pick("total_invested", "totalInvested")
        if total_invested is None:
            total_invested = shares * average_price
            values["total_invested"] = total_invested

        if pick("profit_loss", "profitLoss") is None:
            values["profit_loss"] = float(total_value) - float(total_invested)

        if pick("return_rate", "returnRate") is None:
            invested = float(total_invested)
            values["return_rate"] = (float(total_value) / invested - 1) * 100 if invested > 0 else 0.0

        # 시장 정보만 있는 경우 통화 추론
        if pick("currency") is None and pick("market") == "KR":
            values["currency"] = "KRW"

        return values


class Transaction(AnalyticsModel):
    """거래 이벤트 (주식 수 재구성의 원천 데이터)"""

    symbol: str = Field(..., min_length=1)
    type: TransactionType
    date: Date
    shares: float = Field(default=0.0, ge=0)
    price: float = 0.0
    amount: float = 0.0
    fee: float = 0.0
    tax: float = 0.0
    currency: Currency = "USD"
    purchase_method: Literal["manual", "auto"] = "manual"


class PricePoint(AnalyticsModel):
    """일별 종가"""

    date: Date
    close: float


class PriceSeries(AnalyticsModel):
    """날짜 오름차순, 날짜 중복 없는 종가 시계열"""

    symbol: str
    points: Tuple[PricePoint, ...] = ()
    source: SeriesSource = "live"

    @property
    def start(self) -> Optional[Date]:
        return self.points[0].date if self.points else None

    @property
    def end(self) -> Optional[Date]:
        return self.points[-1].date if self.points else None

    def __len__(self) -> int:
        return len(self.points)


class DailySnapshot(AnalyticsModel):
    """일별 포트폴리오 평가액 (백테스트 입력)"""

    date: Date
    total_value: float


class SpotRate(AnalyticsModel):
    """USD/KRW 등 현물 환율 (quote 통화 / base 통화 1단위)"""

    base: Currency = "USD"
    quote: Currency = "KRW"
    rate: float
    source: SeriesSource = "live"


class AdvisorInsight(AnalyticsModel):
    """AI 어드바이저가 남긴 최근 실행 아이템"""

    id: str
    action_items: List[str] = Field(default_factory=list)


# ============================================================================
# 성과 / 벤치마크
# ============================================================================


class PerformancePeriod(AnalyticsModel):
    """기간별 포트폴리오 성과"""

    id: PeriodId
    label: str
    nominal_start_date: Date
    start_date: Date
    end_date: Date
    effective_start_date: Optional[Date] = None
    period_days: int = 1
    start_value: float = 0.0
    end_value: float = 0.0
    absolute_change: float = 0.0
    return_rate: Optional[float] = None
    annualized_return: Optional[float] = None
    note: Optional[str] = None


class BenchmarkResult(AnalyticsModel):
    """벤치마크 수익률 비교 결과"""

    id: str
    name: str
    symbol: str
    currency: Currency
    return_rate: Optional[float] = None
    since: Date
    last_price: Optional[float] = None
    source: SeriesSource = "fallback"
    note: Optional[str] = None


class BenchmarkPeriodPerformance(AnalyticsModel):
    """벤치마크 지수의 기간별 성과"""

    benchmark_id: str
    benchmark_name: str
    symbol: str
    currency: Currency
    period: PeriodId
    start_date: Date
    effective_start_date: Optional[Date] = None
    end_date: Date
    start_value: float = 0.0
    end_value: float = 0.0
    absolute_change: float = 0.0
    return_rate: Optional[float] = None


class PositionSeries(AnalyticsModel):
    symbol: str
    currency: Currency
    series: List[PricePoint] = Field(default_factory=list)


class PerformanceReport(AnalyticsModel):
    """기간 성과 + 벤치마크 리포트"""

    base_currency: Currency
    periods: Dict[str, PerformancePeriod]
    benchmarks: List[BenchmarkPeriodPerformance] = Field(default_factory=list)
    latest_valuation_date: Optional[Date] = None
    current_value: float = 0.0
    position_series: List[PositionSeries] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)


# ============================================================================
# 리스크 / 분석
# ============================================================================


class RiskMetrics(AnalyticsModel):
    volatility: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    concentration: float = 0.0
    diversification_score: float = 0.0
    basis: Literal["time-series", "cross-section", "empty"] = "empty"


class Allocation(AnalyticsModel):
    """섹터/지역/자산 유형별 비중"""

    key: str
    value: float
    percentage: float
    return_rate: float
    count: int


class TopContributor(AnalyticsModel):
    symbol: str
    contribution: float
    weight: float
    return_rate: float


class PortfolioAnalysis(AnalyticsModel):
    """포트폴리오 종합 분석"""

    base_currency: Currency
    total_value: float
    total_invested: float
    overall_return_rate: float
    sector_allocation: List[Allocation] = Field(default_factory=list)
    region_allocation: List[Allocation] = Field(default_factory=list)
    asset_allocation: List[Allocation] = Field(default_factory=list)
    risk_metrics: RiskMetrics = Field(default_factory=RiskMetrics)
    top_contributors: List[TopContributor] = Field(default_factory=list)
    diversification_score: float = 0.0


# ============================================================================
# 리밸런싱
# ============================================================================


class RebalancingAction(AnalyticsModel):
    symbol: str
    action: RebalanceAction
    current_weight: float
    target_weight: float
    weight_delta: float
    amount: float
    rationale: str


class RebalancingPreset(AnalyticsModel):
    """이름 있는 목표 비중 프리셋 (합계 100.0)"""

    id: str
    name: str
    description: str
    target_weights: Dict[str, float]
    category: str = "balanced"
    risk_level: Literal["low", "medium", "high"] = "medium"
    focus: Optional[str] = None


class RebalancingRecommendation(AnalyticsModel):
    id: str
    name: str
    summary: str
    rationale: List[str] = Field(default_factory=list)
    target_weights: Dict[str, float]
    expected_return: float = 0.0
    expected_risk: float = 0.0
    rebalancing: List[RebalancingAction] = Field(default_factory=list)


class OptimizerResponse(AnalyticsModel):
    base_currency: Currency
    current_weights: Dict[str, float] = Field(default_factory=dict)
    recommendations: List[RebalancingRecommendation] = Field(default_factory=list)


# ============================================================================
# 백테스트
# ============================================================================


class BacktestStats(AnalyticsModel):
    total_return: float = 0.0
    annualized_return: float = 0.0
    volatility: float = 0.0
    max_drawdown: float = 0.0


class BacktestPoint(AnalyticsModel):
    date: Date
    baseline: float
    scenario: float


class BacktestResult(AnalyticsModel):
    strategy: BacktestStrategy
    start_date: Optional[Date] = None
    end_date: Optional[Date] = None
    days: int = 0
    baseline: BacktestStats = Field(default_factory=BacktestStats)
    scenario: BacktestStats = Field(default_factory=BacktestStats)
    series: List[BacktestPoint] = Field(default_factory=list)
    insufficient_data: bool = False
    note: Optional[str] = None


# ============================================================================
# 절세
# ============================================================================


class TaxOptimizationConfig(AnalyticsModel):
    target_harvest_amount: float
    estimated_tax_rate: float


class TaxOptimizationPosition(AnalyticsModel):
    symbol: str
    name: Optional[str] = None
    currency: Currency = "USD"
    shares: float = 0.0
    average_price: float = 0.0
    current_price: float = 0.0
    total_value: float = 0.0
    profit_loss: float
    return_rate: float = 0.0
    harvest_amount: float = 0.0
    action: TaxAction


class TaxOptimizationSummary(AnalyticsModel):
    total_unrealized_gain: float
    total_unrealized_loss: float
    net_unrealized: float
    harvest_target: float
    harvest_achieved: float
    remaining_target: float
    estimated_tax_savings: float


class TaxOptimizationResponse(AnalyticsModel):
    config: TaxOptimizationConfig
    summary: TaxOptimizationSummary
    candidates: List[TaxOptimizationPosition] = Field(default_factory=list)


# ============================================================================
# 스마트 알림
# ============================================================================


class SmartAlert(AnalyticsModel):
    id: str
    severity: AlertSeverity
    title: str
    description: str
    symbol: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    recommended_action: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class SmartAlertResponse(AnalyticsModel):
    base_currency: Currency
    alerts: List[SmartAlert] = Field(default_factory=list)
    counts: Dict[str, int] = Field(default_factory=dict)
    generated_at: datetime


# ============================================================================
# 시나리오
# ============================================================================


class ScenarioConfig(AnalyticsModel):
    preset: ScenarioPreset = "custom"
    market_shift_pct: Optional[float] = None
    usd_shift_pct: Optional[float] = None
    additional_contribution: float = 0.0
    notes: Optional[str] = None

    @field_validator("additional_contribution", mode="before")
    @classmethod
    def default_contribution(cls, v: Any) -> Any:
        return 0.0 if v is None else v


class ScenarioPositionProjection(AnalyticsModel):
    symbol: str
    name: Optional[str] = None
    currency: Currency
    shares: float
    current_price: float
    projected_price: float
    current_value: float
    projected_value: float
    projected_profit_loss: float
    projected_return_rate: float


class ScenarioResult(AnalyticsModel):
    current_total_value: float
    projected_total_value: float
    projected_return_rate: float
    projected_profit_loss: float
    additional_contribution: float
    market_shift_pct: float
    usd_shift_pct: float
    positions: List[ScenarioPositionProjection] = Field(default_factory=list)


class ScenarioAnalysisResponse(AnalyticsModel):
    config: ScenarioConfig
    result: ScenarioResult


# ============================================================================
# 기여도 / 상관관계
# ============================================================================


class ContributionEntry(AnalyticsModel):
    symbol: str
    name: str
    market: Market
    currency: Currency
    weight_pct: float
    return_pct: float
    contribution_pct: float
    contribution_value: float
    investment_value: float
    current_value: float
    is_top_contributor: bool = False
    is_lagging: bool = False
    tag: Literal["core", "reducing", "supporting", "watch"] = "watch"


class ContributionResponse(AnalyticsModel):
    base_currency: Currency
    entries: List[ContributionEntry] = Field(default_factory=list)
    total_contribution_value: float = 0.0
    total_contribution_pct: float = 0.0
    total_invested: float = 0.0
    total_value: float = 0.0


class CorrelationMatrix(AnalyticsModel):
    symbols: List[str] = Field(default_factory=list)
    matrix: List[List[Optional[float]]] = Field(default_factory=list)
    date_count: int = 0
