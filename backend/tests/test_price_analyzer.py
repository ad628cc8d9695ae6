"""Tests for price analysis functions."""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from pricewatch.models import Destination
from pricewatch.models.price_observation import utcnow
from pricewatch.services.price_analyzer import (
    PriceAnalyzer,
    Recommendation,
    Trend,
    buy_decision,
    calculate_trend,
    days_until_departure,
    find_price_drop,
    quality_score,
    range_position,
    recommend,
)
from pricewatch.services.repository import SqlAlchemyRepository

from conftest import make_destination


def _destination(max_price=None, departure_in_days=60):
    return Destination(
        id=1,
        origin="YUL",
        destination="CUN",
        departure_date=date.today() + timedelta(days=departure_in_days),
        max_price=Decimal(str(max_price)) if max_price is not None else None,
    )


class TestCalculateTrend:
    def test_rising(self):
        # Recent average 120 vs older 100 = +20%
        assert calculate_trend([120, 120, 120, 100, 100, 100]) == Trend.RISING

    def test_stable_within_threshold(self):
        # Recent average 103 vs older 100 = +3%
        assert calculate_trend([103, 103, 103, 100, 100, 100]) == Trend.STABLE

    def test_falling(self):
        assert calculate_trend([80, 80, 80, 100, 100, 100]) == Trend.FALLING

    def test_exactly_five_percent_is_stable(self):
        assert calculate_trend([105, 105, 105, 100, 100, 100]) == Trend.STABLE

    def test_fewer_than_six_points_is_stable(self):
        assert calculate_trend([200, 200, 200, 100, 100]) == Trend.STABLE

    def test_only_first_six_points_count(self):
        assert calculate_trend([100, 100, 100, 100, 100, 100, 10, 10]) == Trend.STABLE

    def test_empty(self):
        assert calculate_trend([]) == Trend.STABLE


class TestRangePosition:
    def test_at_min(self):
        assert range_position(90, 90, 110) == 0.0

    def test_at_max(self):
        assert range_position(110, 90, 110) == 100.0

    def test_midpoint(self):
        assert range_position(100, 90, 110) == 50.0

    def test_flat_history_is_midpoint(self):
        assert range_position(80, 100, 100) == 50.0


class TestQualityScore:
    def test_empty_history_is_neutral(self):
        result = quality_score(800, [])
        assert result.score == 50
        assert result.recommendation == Recommendation.INSUFFICIENT_HISTORY
        assert result.recommendation.value == "insufficient history"
        assert result.stats is None
        assert result.trend == Trend.STABLE

    def test_average_at_midpoint_stable_scores_85(self):
        # avg 100, range 90-110: no excess deduction, 50 * 0.3 = 15, no trend
        result = quality_score(100, [100, 90, 110])
        assert result.score == 85
        assert result.stats.trend == Trend.STABLE
        assert result.stats.avg_price == 100.0
        assert result.stats.min_price == 90.0
        assert result.stats.max_price == 110.0
        assert result.stats.data_points == 3

    def test_below_average_has_no_excess_deduction(self):
        # Flat history: only the midpoint deduction applies
        result = quality_score(80, [100, 100, 100])
        assert result.score == 85

    def test_far_above_average_clamps_to_zero(self):
        result = quality_score(1000, [100, 100, 100])
        assert result.score == 0
        assert result.recommendation == Recommendation.HIGH

    def test_falling_trend_clamps_to_100(self):
        history = [80, 80, 80, 100, 100, 100]
        result = quality_score(80, history)
        assert result.stats.trend == Trend.FALLING
        assert result.score == 100
        assert result.recommendation == Recommendation.EXCELLENT
        assert "11.1% below the 30-day average" in result.analysis

    def test_rising_trend_deducts_15(self):
        # avg 110, range 100-120 midpoint: 100 - 15 - 15
        history = [120, 120, 120, 100, 100, 100]
        result = quality_score(110, history)
        assert result.stats.trend == Trend.RISING
        assert result.score == 70
        assert result.recommendation == Recommendation.GOOD

    def test_excess_over_average_is_scaled(self):
        # 10% above avg 100 -> 4 points; at max of range [90, 110] -> 30 points
        result = quality_score(110, [100, 90, 110])
        assert result.score == 66
        assert result.recommendation == Recommendation.AVERAGE
        assert "10.0% above" in result.analysis

    def test_score_is_always_an_int_in_range(self):
        histories = [
            [1],
            [50, 5000],
            [300, 310, 320, 330, 340, 350, 360],
            [999.99, 1000.01, 1000, 998.5],
            [100, 100, 100, 300, 300, 300],
        ]
        for history in histories:
            for current in (0.5, 99.99, 333.33, 1000, 100000):
                score = quality_score(current, history).score
                assert isinstance(score, int)
                assert 0 <= score <= 100

    def test_accepts_decimals(self):
        result = quality_score(Decimal("100.00"), [Decimal("100.00"), Decimal("90.00"), Decimal("110.00")])
        assert result.score == 85

    def test_population_stddev(self):
        result = quality_score(100, [90, 110])
        assert result.stats.stddev_price == 10.0


class TestRecommend:
    def test_bands(self):
        assert recommend(95, -20.0)[0] == Recommendation.EXCELLENT
        assert recommend(90, -20.0)[0] == Recommendation.EXCELLENT
        assert recommend(89, -5.0)[0] == Recommendation.GOOD
        assert recommend(70, -5.0)[0] == Recommendation.GOOD
        assert recommend(69, 0.0)[0] == Recommendation.AVERAGE
        assert recommend(50, 0.0)[0] == Recommendation.AVERAGE
        assert recommend(49, 12.0)[0] == Recommendation.HIGH

    def test_explanation_mentions_deviation(self):
        _, analysis = recommend(40, 12.34)
        assert "12.3% above the 30-day average" in analysis

    def test_explanation_at_average(self):
        _, analysis = recommend(60, 0.0)
        assert "right at the 30-day average" in analysis


class TestFindPriceDrop:
    def test_sixteen_percent_drop(self):
        drop = find_price_drop(1000, 840)
        assert drop is not None
        assert drop.previous_price == 1000.0
        assert drop.current_price == 840.0
        assert drop.drop == 160.0
        assert drop.percentage_drop == pytest.approx(16.0)

    def test_ten_percent_is_not_significant(self):
        assert find_price_drop(1000, 900) is None

    def test_exactly_fifteen_percent_counts(self):
        assert find_price_drop(1000, 850) is not None

    def test_price_increase(self):
        assert find_price_drop(800, 900) is None

    def test_zero_previous_price(self):
        assert find_price_drop(0, 100) is None


class TestBuyDecision:
    def test_max_price_reached_wins_regardless_of_score(self):
        destination = _destination(max_price=800)
        quality = quality_score(750, [100, 100, 100])  # Terrible score
        decision = buy_decision(destination, 750, quality)
        assert decision.buy is True
        assert decision.urgency == "high"
        assert decision.score == quality.score

    def test_excellent_score(self):
        destination = _destination()
        decision = buy_decision(destination, 100, quality_score(100, [100, 90, 110]))
        assert decision.buy is True
        assert decision.urgency == "high"
        assert decision.score == 85

    def test_good_score_close_to_departure(self):
        destination = _destination(departure_in_days=10)
        decision = buy_decision(destination, 110, quality_score(110, [120, 120, 120, 100, 100, 100]))
        assert decision.buy is True
        assert decision.urgency == "medium"
        assert decision.days_until_departure == 10

    def test_good_score_far_from_departure(self):
        destination = _destination(departure_in_days=60)
        decision = buy_decision(destination, 110, quality_score(110, [120, 120, 120, 100, 100, 100]))
        assert decision.buy is False
        assert decision.urgency is None
        assert decision.score == 70
        assert decision.days_until_departure == 60
        assert decision.reason == "good price"

    def test_max_price_above_current_but_not_reached(self):
        destination = _destination(max_price=500, departure_in_days=60)
        decision = buy_decision(destination, 600, quality_score(600, []))
        assert decision.buy is False
        assert decision.score == 50

    def test_days_until_departure(self):
        today = date(2026, 1, 1)
        assert days_until_departure(date(2026, 1, 15), today) == 14


class TestPriceAnalyzer:
    async def _seed(self, repository, destination, prices_by_days_ago):
        for days_ago, price in prices_by_days_ago:
            await repository.insert_observation(
                destination.id,
                Decimal(str(price)),
                observed_at=utcnow() - timedelta(days=days_ago),
            )

    @pytest.mark.asyncio
    async def test_history_window_excludes_old_readings(self, db_session):
        repository = SqlAlchemyRepository(db_session)
        destination = make_destination(db_session)
        await self._seed(repository, destination, [(40, 5000), (3, 100), (2, 90), (1, 110)])

        analyzer = PriceAnalyzer(repository, window_days=30)
        history = await analyzer.get_price_history(destination.id)
        assert history == [110.0, 90.0, 100.0]

    @pytest.mark.asyncio
    async def test_analyze_leaves_out_the_new_observation(self, db_session):
        repository = SqlAlchemyRepository(db_session)
        destination = make_destination(db_session)
        await self._seed(repository, destination, [(3, 100), (2, 90), (1, 110)])

        observation = await repository.insert_observation(destination.id, Decimal("100"))
        analysis = await PriceAnalyzer(repository).analyze(destination, observation)

        assert analysis.quality.score == 85
        assert analysis.quality.stats.data_points == 3
        assert analysis.decision.buy is True
        assert analysis.decision.urgency == "high"
        assert analysis.price_drop is None

    @pytest.mark.asyncio
    async def test_first_observation_is_neutral(self, db_session):
        repository = SqlAlchemyRepository(db_session)
        destination = make_destination(db_session)

        observation = await repository.insert_observation(destination.id, Decimal("700"))
        analysis = await PriceAnalyzer(repository).analyze(destination, observation)

        assert analysis.quality.score == 50
        assert analysis.quality.recommendation == Recommendation.INSUFFICIENT_HISTORY
        assert analysis.price_drop is None

    @pytest.mark.asyncio
    async def test_price_drop_uses_only_latest_prior_reading(self, db_session):
        repository = SqlAlchemyRepository(db_session)
        destination = make_destination(db_session)
        # An older, much higher price must not matter
        await self._seed(repository, destination, [(5, 3000), (1, 1000)])

        observation = await repository.insert_observation(destination.id, Decimal("840"))
        analysis = await PriceAnalyzer(repository).analyze(destination, observation)

        assert analysis.price_drop is not None
        assert analysis.price_drop.previous_price == 1000.0
        assert analysis.price_drop.percentage_drop == pytest.approx(16.0)

    @pytest.mark.asyncio
    async def test_price_drop_looks_beyond_history_window(self, db_session):
        repository = SqlAlchemyRepository(db_session)
        destination = make_destination(db_session)
        await self._seed(repository, destination, [(45, 1000)])

        drop = await PriceAnalyzer(repository).detect_price_drop(destination.id, 800)
        assert drop is not None
        assert drop.percentage_drop == pytest.approx(20.0)

    @pytest.mark.asyncio
    async def test_detect_price_drop_without_history(self, db_session):
        repository = SqlAlchemyRepository(db_session)
        destination = make_destination(db_session)
        assert await PriceAnalyzer(repository).detect_price_drop(destination.id, 800) is None

    @pytest.mark.asyncio
    async def test_should_buy_now_with_max_price(self, db_session):
        repository = SqlAlchemyRepository(db_session)
        destination = make_destination(db_session, max_price=800)

        decision = await PriceAnalyzer(repository).should_buy_now(destination, 750)
        assert decision.buy is True
        assert decision.urgency == "high"
