"""Tests for rule-based expression scoring."""

import pytest

from kiro.assistant.expressions import Expression
from kiro.assistant.scoring import (
    ContentFlags,
    ExpressionScorer,
    ScoredCandidate,
    VarietyPolicy,
    adjust_weather_leak,
)


@pytest.fixture
def scorer():
    return ExpressionScorer()


def score_of(ranked, expression):
    return next(c for c in ranked if c.expression is expression)


class TestContentFlags:

    def test_weather_talk(self):
        assert ContentFlags.detect("It's 31°C and sunny").weather_talk
        assert ContentFlags.detect("Bring an umbrella").weather_talk
        assert not ContentFlags.detect("that joke was cold lol").weather_talk

    def test_romantic_and_compliment(self):
        flags = ContentFlags.detect("You're so beautiful")

        assert flags.romantic
        assert flags.compliment
        assert flags.dialog

    def test_temperature_words_need_weather_context(self):
        assert ContentFlags.detect("It's so hot today, stay hydrated!").weather_talk
        assert ContentFlags.detect("It's really cold outside, bundle up!").weather_talk
        assert ContentFlags.detect("Brrr, it's freezing cold tonight!").weather_talk
        assert not ContentFlags.detect("what a cold reply").weather_talk

    def test_romance_words_match_whole_words(self):
        assert not ContentFlags.detect("Sorry, I couldn't execute that request.").romantic
        assert not ContentFlags.detect("Put on your gloves").romantic
        assert ContentFlags.detect("I love it").romantic
        assert ContentFlags.detect("so cute!").romantic

    def test_emergency(self):
        assert ContentFlags.detect("Evacuate now").emergency
        assert not ContentFlags.detect("Have a nice day").emergency


class TestScoreExpressions:
    """Test ranking and contextual adjustments."""

    def test_is_deterministic(self, scorer):
        text = "Hmm, let me think about the rain tomorrow"

        assert scorer.score_expressions(text) == scorer.score_expressions(text)

    def test_sorted_and_limited(self, scorer):
        ranked = scorer.score_expressions("Danger! Extreme storm warning", limit=3)

        assert len(ranked) == 3
        scores = [c.score for c in ranked]
        assert scores == sorted(scores, reverse=True)
        assert all(c.score > 0 for c in ranked)

    def test_empty_content_has_no_candidates(self, scorer):
        assert scorer.score_expressions("") == []
        assert scorer.score_expressions("   ") == []

    def test_romance_beats_gratitude(self, scorer):
        ranked = scorer.score_expressions("you're beautiful, thank you!")

        assert ranked[0].expression is Expression.SMITTEN
        assert ranked[0].score == pytest.approx(45.0)
        assert 'romantic_context' in ranked[0].reason_tags
        assert 'dialog_boost' in ranked[0].reason_tags

        excited = score_of(scorer.score_expressions("you're beautiful, thank you!", limit=20), Expression.EXCITED)
        assert excited.raw_score == pytest.approx(9.5)
        assert excited.score == pytest.approx(2.85)
        assert 'suppress_success' in excited.reason_tags
        assert 'compliment_boost' not in excited.reason_tags

    def test_romance_floor_without_keywords(self, scorer):
        ranked = scorer.score_expressions("my darling")

        assert ranked[0].expression is Expression.SMITTEN
        assert 'romance_fallback' in ranked[0].reason_tags

    def test_weather_expression_discounted_outside_weather_talk(self, scorer):
        ranked = scorer.score_expressions("that joke was cold lol", limit=20)

        cold = score_of(ranked, Expression.COLD)
        assert cold.raw_score == pytest.approx(9.5)
        assert cold.score <= 0.4 * cold.raw_score + 1e-9
        assert 'weather_penalty' in cold.reason_tags

    def test_weather_talk_keeps_weather_expression(self, scorer):
        ranked = scorer.score_expressions("Heavy rain today, bring an umbrella")

        assert ranked[0].expression is Expression.RAINY
        assert ranked[0].score == pytest.approx(ranked[0].raw_score)

    @pytest.mark.parametrize("content, expected", [
        ("It's so hot today, stay hydrated!", Expression.HOT),
        ("It's really cold outside, bundle up!", Expression.COLD),
        ("Brrr, it's freezing cold tonight!", Expression.COLD),
    ])
    def test_temperature_replies_pick_weather_expression(self, scorer, content, expected):
        ranked = scorer.score_expressions(content)

        assert ranked[0].expression is expected
        assert 'weather_penalty' not in ranked[0].reason_tags

    def test_gloves_are_not_love(self, scorer):
        ranked = scorer.score_expressions(
            "Don't forget your gloves, it's freezing cold today!", limit=20)

        assert ranked[0].expression is Expression.COLD
        assert score_of(ranked, Expression.SMITTEN).reason_tags == ()

    def test_execute_is_not_cute(self, scorer):
        ranked = scorer.score_expressions("Sorry, I couldn't execute that request.", limit=20)

        assert ranked[0].expression is Expression.APOLOGETIC
        assert 'romantic_context' not in score_of(ranked, Expression.SMITTEN).reason_tags

    def test_emergency_doubles_alarmed(self, scorer):
        ranked = scorer.score_expressions("Danger! Extreme heat warning, take cover")

        assert ranked[0].expression is Expression.ALARMED
        assert ranked[0].score == pytest.approx(2 * ranked[0].raw_score)
        assert 'emergency_boost' in ranked[0].reason_tags

    def test_compliment_boosts_excited(self, scorer):
        ranked = scorer.score_expressions("Great job, well done! Thanks")

        assert ranked[0].expression is Expression.EXCITED
        assert ranked[0].score == pytest.approx(1.5 * ranked[0].raw_score)

    def test_apology(self, scorer):
        ranked = scorer.score_expressions("I'm so sorry, that failed")

        assert ranked[0].expression is Expression.APOLOGETIC
        assert ranked[0].score == pytest.approx(11.0)
        assert ranked[0].reason == 'pattern+2kw+sentiment'


class TestAdjustments:
    """Adjustments are pure functions of tallies and flags."""

    def test_weather_leak_skipped_for_weather_talk(self, scorer):
        tallies = scorer.tally("cold")

        adjusted = adjust_weather_leak(tallies, ContentFlags(weather_talk=True))

        assert adjusted == tallies

    def test_weather_leak_does_not_mutate_input(self, scorer):
        tallies = scorer.tally("cold")
        before = dict(tallies)

        adjusted = adjust_weather_leak(tallies, ContentFlags())

        assert tallies == before
        assert adjusted[Expression.COLD].score < tallies[Expression.COLD].score

    def test_custom_pipeline(self):
        scorer = ExpressionScorer(adjustments=())

        ranked = scorer.score_expressions("that joke was cold lol", limit=20)

        cold = score_of(ranked, Expression.COLD)
        assert cold.score == cold.raw_score


class TestBestMatch:

    def test_best_match(self, scorer):
        assert scorer.get_best_match("I'm so sorry, that failed") is Expression.APOLOGETIC

    def test_default_when_nothing_scores(self, scorer):
        assert scorer.get_best_match("") is Expression.IDLE


class StubRandom:
    def __init__(self, pick: int):
        self.pick = pick
        self.calls = []

    def choices(self, population, weights, k):
        self.calls.append((list(population), list(weights), k))
        return [population[self.pick]]


def candidate(expression, score):
    return ScoredCandidate(expression=expression, score=score)


class TestVarietyPolicy:

    def test_strong_top_candidate_always_wins(self):
        rng = StubRandom(pick=2)
        policy = VarietyPolicy(rng=rng)

        chosen = policy.choose([
            candidate(Expression.SAD, 4.0),
            candidate(Expression.IDLE, 3.0),
            candidate(Expression.THINKING, 2.0),
        ])

        assert chosen is Expression.SAD
        assert rng.calls == []

    def test_weak_top_draws_among_top_three(self):
        rng = StubRandom(pick=1)
        policy = VarietyPolicy(rng=rng)

        chosen = policy.choose([
            candidate(Expression.SAD, 3.5),
            candidate(Expression.IDLE, 3.0),
            candidate(Expression.THINKING, 2.0),
            candidate(Expression.HOPEFUL, 1.0),
        ])

        assert chosen is Expression.IDLE
        population, weights, k = rng.calls[0]
        assert [c.expression for c in population] == [Expression.SAD, Expression.IDLE, Expression.THINKING]
        assert weights == [0.7, 0.2, 0.1]
        assert k == 1

    def test_single_candidate(self):
        policy = VarietyPolicy(rng=StubRandom(pick=0))

        assert policy.choose([candidate(Expression.HOT, 1.0)]) is Expression.HOT

    def test_no_candidates(self):
        assert VarietyPolicy().choose([]) is Expression.IDLE
