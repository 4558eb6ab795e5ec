"""
Portfolio Analytics CLI 진입점

Typer를 사용한 통합 CLI 인터페이스를 제공합니다.
모든 분석 명령은 YAML/JSON 번들 파일을 입력으로 받습니다.
"""

import json
from datetime import date
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import settings, setup_logging
from .ingest.bundle import BUNDLE_TEMPLATE, PortfolioBundle, load_bundle

# Typer 앱 인스턴스
app = typer.Typer(
    name="portfolio-analytics",
    help="📈 Portfolio Analytics - 포트폴리오 성과/리스크/리밸런싱 분석",
    add_completion=False,
)

# Rich Console
console = Console()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="로그 레벨 (기본: 설정값)"),
):
    """로깅을 설정합니다."""
    if log_level:
        settings.log_level = log_level
    setup_logging()


def _load(bundle_file: Path) -> PortfolioBundle:
    try:
        return load_bundle(bundle_file)
    except FileNotFoundError as e:
        console.print(f"❌ [bold red]입력 파일을 찾을 수 없습니다[/bold red]: {e}")
        raise typer.Exit(code=1)
    except ValueError as e:
        console.print(f"❌ [bold red]입력 파일 검증 실패[/bold red]: {e}")
        raise typer.Exit(code=1)


def _as_of(bundle: PortfolioBundle) -> Optional[date]:
    return date.fromisoformat(bundle.as_of) if bundle.as_of else None


def _emit_json(result: Any) -> None:
    payload = result.to_dict() if hasattr(result, "to_dict") else result
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def _fmt(value: Optional[float], suffix: str = "", digits: int = 2) -> str:
    if value is None:
        return "-"
    return f"{value:,.{digits}f}{suffix}"


@app.command()
def status():
    """현재 설정을 확인합니다."""
    console.print("📊 [bold blue]Portfolio Analytics 상태[/bold blue]")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("항목", style="cyan")
    table.add_column("값", style="yellow")

    table.add_row("실행 환경", settings.environment)
    table.add_row("엄격한 무결성 검사", "✅" if settings.strict_integrity else "❌")
    table.add_row("기준 통화", settings.base_currency)
    table.add_row("폴백 환율 (USD/KRW)", _fmt(settings.fallback_usd_krw_rate))
    table.add_row("가격 캐시 TTL", f"{settings.price_cache_ttl_minutes}분")
    table.add_row("환율 캐시 TTL", f"{settings.fx_cache_ttl_minutes}분")
    table.add_row("병렬 작업 수", str(settings.n_jobs))
    table.add_row("연율화 (거래일/달력일)", f"{settings.trading_days} / {settings.calendar_days}")
    table.add_row("로그 레벨", settings.log_level)

    console.print(table)


@app.command()
def performance(
    bundle_file: Path = typer.Argument(..., help="번들 파일 (YAML/JSON)"),
    as_json: bool = typer.Option(False, "--json", help="JSON으로 출력"),
):
    """기간별 성과와 벤치마크 성과를 계산합니다."""
    from .errors import DataIntegrityError
    from .performance.periods import build_performance_report
    from .pipeline import bundle_market_data

    bundle = _load(bundle_file)
    market = bundle_market_data(bundle)

    try:
        report = build_performance_report(
            bundle.positions, bundle.transactions, market.series,
            fx_rate=market.fx_rate, base_currency=bundle.base_currency, as_of=_as_of(bundle),
            benchmark_series=market.benchmark_series,
        )
    except DataIntegrityError as e:
        console.print(f"❌ [bold red]데이터 무결성 오류[/bold red]: {e}")
        raise typer.Exit(code=1)

    if as_json:
        _emit_json(report)
        return

    table = Table(title=f"기간별 성과 ({report.base_currency})", show_header=True, header_style="bold magenta")
    table.add_column("기간", style="cyan")
    table.add_column("시작일")
    table.add_column("시작 평가액", justify="right")
    table.add_column("종료 평가액", justify="right")
    table.add_column("수익률", justify="right", style="green")
    table.add_column("연율화", justify="right")
    table.add_column("비고", style="yellow")

    for period in report.periods.values():
        table.add_row(
            period.label,
            str(period.start_date),
            _fmt(period.start_value, digits=0),
            _fmt(period.end_value, digits=0),
            _fmt(period.return_rate, "%"),
            _fmt(period.annualized_return, "%"),
            period.note or "",
        )
    console.print(table)

    if report.benchmarks:
        bench = Table(title="벤치마크", show_header=True, header_style="bold magenta")
        bench.add_column("지수", style="cyan")
        bench.add_column("기간")
        bench.add_column("수익률", justify="right", style="green")
        for item in report.benchmarks:
            bench.add_row(item.benchmark_name, item.period, _fmt(item.return_rate, "%"))
        console.print(bench)


@app.command()
def rebalance(
    bundle_file: Path = typer.Argument(..., help="번들 파일 (YAML/JSON)"),
    preset: str = typer.Option("ai-recommended", "--preset", "-p",
                               help="프리셋: equal, current, defensive, aggressive, ai-recommended"),
    as_json: bool = typer.Option(False, "--json", help="JSON으로 출력"),
):
    """리밸런싱 프리셋의 목표 비중과 매수/매도 액션을 계산합니다."""
    from .strategies.presets import build_rebalancing_presets, get_preset, prepare_positions
    from .strategies.rebalancing import build_rebalancing_actions, current_weights

    bundle = _load(bundle_file)
    presets = build_rebalancing_presets(bundle.positions, bundle.base_currency, bundle.fx_rate)

    try:
        selected = get_preset(presets, preset)
    except ValueError as e:
        console.print(f"❌ [bold red]{e}[/bold red]")
        raise typer.Exit(code=1)

    total = sum(p.base_value for p in prepare_positions(bundle.positions, bundle.base_currency, bundle.fx_rate))
    current = current_weights(bundle.positions, bundle.base_currency, bundle.fx_rate)
    actions = build_rebalancing_actions(selected.target_weights, current, total)

    if as_json:
        _emit_json({"preset": selected.to_dict(), "actions": [a.to_dict() for a in actions]})
        return

    console.print(f"⚖️ [bold]{selected.name}[/bold] - {selected.description}")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("종목", style="cyan")
    table.add_column("현재 비중", justify="right")
    table.add_column("목표 비중", justify="right")
    table.add_column("액션")
    table.add_column(f"금액 ({bundle.base_currency})", justify="right")

    for action in actions:
        color = {"buy": "green", "sell": "red"}.get(action.action, "white")
        table.add_row(
            action.symbol,
            _fmt(action.current_weight, "%", 1),
            _fmt(action.target_weight, "%", 1),
            f"[{color}]{action.action}[/{color}]",
            _fmt(action.amount, digits=0),
        )
    console.print(table)


@app.command()
def backtest(
    bundle_file: Path = typer.Argument(..., help="번들 파일 (YAML/JSON)"),
    strategy: str = typer.Option("baseline", "--strategy", "-s",
                                 help="전략: baseline, growth, defensive, diversified, equal"),
    period_days: Optional[int] = typer.Option(None, "--days", "-d", help="기간 (일, 기본: 설정값)"),
    as_json: bool = typer.Option(False, "--json", help="JSON으로 출력"),
):
    """일별 스냅샷으로 전략 백테스트를 실행합니다."""
    from .backtest.simulator import BacktestSimulator

    bundle = _load(bundle_file)

    try:
        result = BacktestSimulator(period_days=period_days).run(bundle.snapshots, strategy, as_of=_as_of(bundle))
    except ValueError as e:
        console.print(f"❌ [bold red]백테스트 실패[/bold red]: {e}")
        raise typer.Exit(code=1)

    if as_json:
        _emit_json(result)
        return

    if result.insufficient_data:
        console.print(f"⚠️ [bold yellow]{result.note}[/bold yellow]")
        return

    table = Table(title=f"백테스트 ({result.start_date} ~ {result.end_date}, {result.days}일)",
                  show_header=True, header_style="bold magenta")
    table.add_column("지표", style="cyan")
    table.add_column("baseline", justify="right")
    table.add_column(strategy, justify="right", style="green")

    for label, key in [("총 수익률", "total_return"), ("연율화 수익률", "annualized_return"),
                       ("변동성", "volatility"), ("최대 낙폭", "max_drawdown")]:
        table.add_row(label, _fmt(getattr(result.baseline, key), "%"), _fmt(getattr(result.scenario, key), "%"))
    console.print(table)


@app.command()
def tax(
    bundle_file: Path = typer.Argument(..., help="번들 파일 (YAML/JSON)"),
    target: Optional[float] = typer.Option(None, "--target", "-t", help="손실 실현 목표 금액"),
    rate: Optional[float] = typer.Option(None, "--rate", "-r", help="추정 세율 (%)"),
    as_json: bool = typer.Option(False, "--json", help="JSON으로 출력"),
):
    """손실 실현(절세) 계획을 세웁니다."""
    from .advisory.tax import plan_tax_loss_harvest

    bundle = _load(bundle_file)
    plan = plan_tax_loss_harvest(bundle.positions, target, rate, bundle.base_currency, bundle.fx_rate)

    if as_json:
        _emit_json(plan)
        return

    summary = plan.summary
    console.print(f"💰 [bold]목표[/bold] {_fmt(summary.harvest_target, digits=0)} / "
                  f"[bold]실현[/bold] {_fmt(summary.harvest_achieved, digits=0)} / "
                  f"[bold]예상 절세[/bold] {_fmt(summary.estimated_tax_savings, digits=0)} {bundle.base_currency}")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("종목", style="cyan")
    table.add_column("손익", justify="right")
    table.add_column("실현 금액", justify="right")
    table.add_column("액션")
    for candidate in plan.candidates:
        table.add_row(candidate.symbol, _fmt(candidate.profit_loss, digits=0),
                      _fmt(candidate.harvest_amount, digits=0), candidate.action)
    console.print(table)


@app.command()
def scenario(
    bundle_file: Path = typer.Argument(..., help="번들 파일 (YAML/JSON)"),
    preset: str = typer.Option("custom", "--preset", "-p", help="프리셋: bullish, bearish, volatile, custom"),
    market_shift: Optional[float] = typer.Option(None, "--market", help="시장 변동 (%)"),
    usd_shift: Optional[float] = typer.Option(None, "--usd", help="USD 환율 변동 (%)"),
    contribution: float = typer.Option(0.0, "--contribution", help="추가 납입액 (기준 통화)"),
    as_json: bool = typer.Option(False, "--json", help="JSON으로 출력"),
):
    """가격/환율 충격 시나리오를 예측합니다."""
    from .advisory.scenario import run_scenario_analysis
    from .models import ScenarioConfig

    bundle = _load(bundle_file)

    try:
        config = ScenarioConfig(preset=preset, market_shift_pct=market_shift, usd_shift_pct=usd_shift,
                                additional_contribution=contribution)
    except ValueError as e:
        console.print(f"❌ [bold red]시나리오 설정 오류[/bold red]: {e}")
        raise typer.Exit(code=1)

    response = run_scenario_analysis(bundle.positions, config, bundle.base_currency, bundle.fx_rate)

    if as_json:
        _emit_json(response)
        return

    result = response.result
    console.print(f"🔮 [bold]{preset}[/bold] 시장 {result.market_shift_pct:+.1f}%, USD {result.usd_shift_pct:+.1f}%")
    console.print(f"   현재 {_fmt(result.current_total_value, digits=0)} → 예상 "
                  f"{_fmt(result.projected_total_value, digits=0)} {bundle.base_currency} "
                  f"({_fmt(result.projected_return_rate, '%')})")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("종목", style="cyan")
    table.add_column("현재가", justify="right")
    table.add_column("예상가", justify="right")
    table.add_column("예상 손익", justify="right")
    for item in result.positions:
        table.add_row(item.symbol, _fmt(item.current_price), _fmt(item.projected_price),
                      _fmt(item.projected_profit_loss))
    console.print(table)


@app.command()
def alerts(
    bundle_file: Path = typer.Argument(..., help="번들 파일 (YAML/JSON)"),
    as_json: bool = typer.Option(False, "--json", help="JSON으로 출력"),
):
    """스마트 알림을 평가합니다."""
    from .advisory.alerts import evaluate_smart_alerts

    bundle = _load(bundle_file)
    response = evaluate_smart_alerts(
        bundle.positions,
        advisor_insight=bundle.advisor_insight,
        history=bundle.snapshots,
        base_currency=bundle.base_currency,
        fx_rate=bundle.fx_rate,
    )

    if as_json:
        _emit_json(response)
        return

    icons = {"emergency": "🚨", "important": "⚠️", "info": "ℹ️"}
    for alert in response.alerts:
        console.print(f"{icons[alert.severity]} [bold]{alert.title}[/bold] - {alert.description}")
        if alert.recommended_action:
            console.print(f"   → {alert.recommended_action}")
    console.print(f"\n합계: {response.counts}")


@app.command()
def correlation(
    bundle_file: Path = typer.Argument(..., help="번들 파일 (YAML/JSON)"),
    as_json: bool = typer.Option(False, "--json", help="JSON으로 출력"),
):
    """보유 종목 간 일 수익률 상관관계를 계산합니다."""
    from .performance.correlation import correlation_matrix
    from .pipeline import bundle_market_data

    bundle = _load(bundle_file)
    market = bundle_market_data(bundle)
    symbols = [p.symbol for p in bundle.positions if p.symbol in market.series]
    result = correlation_matrix(market.series, symbols)

    if as_json:
        _emit_json(result)
        return

    table = Table(title=f"상관관계 ({result.date_count} 날짜)", show_header=True, header_style="bold magenta")
    table.add_column("", style="cyan")
    for symbol in result.symbols:
        table.add_column(symbol, justify="right")
    for symbol, row in zip(result.symbols, result.matrix):
        table.add_row(symbol, *[_fmt(v) for v in row])
    console.print(table)


@app.command()
def report(
    bundle_file: Path = typer.Argument(..., help="번들 파일 (YAML/JSON)"),
    strategy: str = typer.Option("baseline", "--strategy", "-s", help="백테스트 전략"),
):
    """모든 계산기를 실행해 전체 리포트를 JSON으로 출력합니다."""
    from .pipeline import run_bundle

    bundle = _load(bundle_file)
    try:
        result = run_bundle(bundle, strategy=strategy)
    except ValueError as e:
        console.print(f"❌ [bold red]리포트 생성 실패[/bold red]: {e}")
        raise typer.Exit(code=1)
    _emit_json(result)


@app.command(name="create-yaml")
def create_yaml_template(
    output_file: str = typer.Option("my_portfolio.yaml", "--output", "-o", help="출력 파일명"),
):
    """
    번들 YAML 템플릿을 생성합니다.
    """
    output_path = Path(output_file)

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(BUNDLE_TEMPLATE, encoding='utf-8')
    except OSError as e:
        console.print(f"❌ [bold red]템플릿 생성 실패[/bold red]: {e}")
        raise typer.Exit(code=1)

    console.print(f"✅ [bold green]YAML 템플릿 생성 완료[/bold green]: {output_path}")
    console.print(f"📝 다음 명령어로 분석 실행:")
    console.print(f"   [bold cyan]portfolio-analytics performance {output_path}[/bold cyan]")


if __name__ == "__main__":
    app()
