"""
리밸런싱 프리셋, 액션, 최적화 추천 테스트
"""

import pytest

from portfolio_analytics.models import Position
from portfolio_analytics.strategies.optimizer import run_portfolio_optimization
from portfolio_analytics.strategies.presets import (
    WEIGHT_TOTAL,
    build_equal_preset,
    build_rebalancing_presets,
    get_preset,
    round_weights,
    weight_tenths,
)
from portfolio_analytics.strategies.rebalancing import (
    build_rebalancing_actions,
    current_weights,
    generate_rebalancing_suggestions,
)


def position(symbol, value, invested=None, sector=None, asset_type="stock", market="US", currency="USD"):
    return Position(
        symbol=symbol,
        market=market,
        currency=currency,
        total_value=value,
        total_invested=value if invested is None else invested,
        sector=sector,
        asset_type=asset_type,
    )


@pytest.fixture
def mixed_positions():
    """성장/방어 섹터가 섞인 포지션"""
    return [
        position("AAPL", 5000, 3000, sector="information-technology"),
        position("KO", 2000, 2100, sector="consumer-staples"),
        position("VNQ", 1500, 1400, sector="real-estate", asset_type="reit"),
        position("XOM", 1000, 1300, sector="energy"),
        position("005930", 700000, 800000, sector="information-technology", market="KR", currency="KRW"),
    ]


PORTFOLIOS = {
    "single": [position("A", 100)],
    "three-equal": [position("A", 100), position("B", 100), position("C", 100)],
    "skewed": [position("A", 1), position("B", 10), position("C", 1000), position("D", 333)],
    "seven-symbols": [position(f"S{i}", 100 * (i + 1), 90 * (i + 1), sector="utilities") for i in range(7)],
}


class TestWeightRounding:
    """0.1% 단위 반올림 테스트"""

    def test_equal_three_symbols(self):
        """[A, B, C] 균등 분산은 합계가 정확히 100.0"""
        weights = build_equal_preset(["A", "B", "C"]).target_weights

        assert weights == {"A": 33.4, "B": 33.3, "C": 33.3}
        assert weight_tenths(weights) == WEIGHT_TOTAL

    def test_zero_total_is_equal(self):
        assert round_weights({"A": 0.0, "B": 0.0}) == {"A": 50.0, "B": 50.0}
        assert round_weights({}) == {}

    def test_largest_fraction_gets_remainder(self):
        weights = round_weights({"A": 1.0, "B": 2.0})

        assert weights == {"A": 33.3, "B": 66.7}


class TestRebalancingPresets:
    """프리셋 생성 테스트"""

    @pytest.mark.parametrize("name", sorted(PORTFOLIOS))
    def test_every_preset_sums_to_100(self, name):
        presets = build_rebalancing_presets(PORTFOLIOS[name], base_currency="USD")

        assert presets
        for preset in presets:
            assert weight_tenths(preset.target_weights) == WEIGHT_TOTAL, preset.id
            assert all(w >= 0 for w in preset.target_weights.values())

    def test_mixed_currencies_sum_to_100(self, mixed_positions):
        presets = build_rebalancing_presets(mixed_positions, base_currency="KRW", fx_rate=1400.0)

        assert [p.id for p in presets] == ["equal", "current", "defensive", "aggressive", "ai-recommended"]
        for preset in presets:
            assert weight_tenths(preset.target_weights) == WEIGHT_TOTAL, preset.id

    def test_defensive_and_aggressive_split(self):
        positions = [
            position("UTIL", 1000, sector="utilities"),
            position("TECH", 1000, sector="information-technology"),
        ]

        presets = {p.id: p for p in build_rebalancing_presets(positions, base_currency="USD")}

        assert presets["defensive"].target_weights == {"UTIL": 60.0, "TECH": 40.0}
        assert presets["aggressive"].target_weights == {"UTIL": 30.0, "TECH": 70.0}

    def test_optional_presets_skipped(self):
        """방어/성장 종목이 없으면 해당 프리셋 생략"""
        presets = build_rebalancing_presets([position("A", 100), position("B", 200)], base_currency="USD")

        assert [p.id for p in presets] == ["equal", "current", "ai-recommended"]

    def test_heuristic_minimum_weight(self):
        """6종목 이상이면 작은 종목도 최소 비중 근처까지 올림"""
        positions = [position(f"S{i}", 1000) for i in range(5)] + [position("TINY", 1)]

        presets = {p.id: p for p in build_rebalancing_presets(positions, base_currency="USD")}

        assert presets["current"].target_weights["TINY"] == 0.0
        assert presets["ai-recommended"].target_weights["TINY"] >= 2.5

    def test_no_valued_positions(self):
        """평가액이 있는 종목이 없으면 균등 분산만"""
        presets = build_rebalancing_presets([position("A", 0), position("B", 0)], base_currency="USD")

        assert [p.id for p in presets] == ["equal"]
        assert presets[0].target_weights == {"A": 50.0, "B": 50.0}

    def test_empty_positions(self):
        assert build_rebalancing_presets([]) == []

    def test_get_preset(self):
        presets = build_rebalancing_presets(PORTFOLIOS["three-equal"], base_currency="USD")

        assert get_preset(presets, "equal").id == "equal"
        with pytest.raises(ValueError):
            get_preset(presets, "unknown")


class TestRebalancingActions:
    """리밸런싱 액션 테스트"""

    def test_buy_sell_hold(self):
        actions = build_rebalancing_actions(
            {"A": 50.0, "B": 30.0, "C": 20.0},
            {"A": 40.0, "B": 40.0, "C": 20.02},
            total_value=10000.0,
        )
        by_symbol = {a.symbol: a for a in actions}

        assert by_symbol["A"].action == "buy"
        assert by_symbol["A"].amount == 1000.0
        assert by_symbol["B"].action == "sell"
        assert by_symbol["B"].amount == -1000.0
        assert by_symbol["C"].action == "hold"

    def test_symbols_missing_from_target_are_sold(self):
        actions = build_rebalancing_actions({"A": 100.0}, {"A": 80.0, "B": 20.0}, total_value=1000.0)

        assert [(a.symbol, a.action) for a in actions] == [("A", "buy"), ("B", "sell")]

    def test_current_weights(self):
        weights = current_weights([position("A", 300), position("B", 100)], base_currency="USD")

        assert weights == pytest.approx({"A": 75.0, "B": 25.0})

    def test_suggestions_sorted_and_filtered(self):
        """허용 오차 이내는 제외, 비중 차이가 큰 순"""
        positions = [position("A", 700), position("B", 200), position("C", 100)]

        suggestions = generate_rebalancing_suggestions(
            positions, target_allocation={"A": 40.0, "B": 21.0, "C": 39.0}, base_currency="USD",
        )

        assert [s.symbol for s in suggestions] == ["A", "C"]
        assert suggestions[0].action == "sell"
        assert suggestions[1].action == "buy"

    def test_default_equal_targets(self):
        suggestions = generate_rebalancing_suggestions(
            [position("A", 900), position("B", 100)], base_currency="USD",
        )

        assert {s.symbol: s.target_weight for s in suggestions} == {"A": 50.0, "B": 50.0}


class TestOptimizer:
    """최적화 추천 테스트"""

    def test_recommendations(self, mixed_positions):
        response = run_portfolio_optimization(mixed_positions, base_currency="KRW", fx_rate=1400.0)

        assert [r.id for r in response.recommendations] == [
            "equal-balance", "growth-focus", "defensive-shield", "diversified-mix",
        ]
        assert sum(response.current_weights.values()) == pytest.approx(100.0, abs=0.05)
        for recommendation in response.recommendations:
            assert weight_tenths(recommendation.target_weights) == WEIGHT_TOTAL
            assert recommendation.expected_risk >= 4.99

    def test_growth_favours_winners(self, mixed_positions):
        response = run_portfolio_optimization(mixed_positions, base_currency="KRW", fx_rate=1400.0)
        growth = next(r for r in response.recommendations if r.id == "growth-focus")

        assert growth.target_weights["AAPL"] == max(growth.target_weights.values())

    def test_empty(self):
        response = run_portfolio_optimization([], base_currency="USD")

        assert response.recommendations == []
        assert response.current_weights == {}
