"""Rule-based expression scoring.

Scoring happens in two stages:

1. Evidence per expression from the rule table: +3 for the first matching
   trigger pattern, +2 per distinct keyword found, +1 if any sentiment label
   is found, plus a salience bonus of 0.5 x priority. Keywords and sentiment
   labels must start a word, so "gloves" does not count as "love".
2. An ordered pipeline of contextual adjustments driven by coarse content
   flags (weather talk, dialog, romance, compliment, emergency).

Ties keep catalog order because the final sort is stable. That order is an
implementation detail, not something callers should rely on.
"""

import random
import re
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .expressions import (
    DEFAULT_EXPRESSION,
    EXPRESSION_RULES,
    SOCIABLE_EXPRESSIONS,
    WEATHER_EXPRESSIONS,
    Expression,
    ExpressionRule,
)


PATTERN_POINTS = 3.0
KEYWORD_POINTS = 2.0
SENTIMENT_POINTS = 1.0
PRIORITY_WEIGHT = 0.5

ROMANCE_BOOST = 3.0
ROMANCE_SUPPRESS = 0.3
WEATHER_PENALTY = 0.4
# Evidence (without the salience bonus) a weather expression needs to count as
# clearly about weather outside weather talk
WEATHER_EVIDENCE_THRESHOLD = 7.0
DIALOG_BOOST = 1.5
ROMANCE_FLOOR = 3.0
EMERGENCY_BOOST = 2.0
COMPLIMENT_BOOST = 1.5

_WEATHER_TALK = re.compile(
    r"°[cf]|\b(?:weather|forecast|temperatures?|degrees?|rain\w*|drizzle|umbrella"
    r"|humid\w*|sunny|snow\w*|wind\w*|storm\w*|cloud\w*|cuaca|hujan|suhu)\b",
    re.IGNORECASE,
)
# Bare temperature words only count as weather talk next to weather context
_TEMPERATURE_WORD = re.compile(
    r"\b(?:hot|heat\w*|warm\w*|cold|chilly|freez\w*|frosty|scorching|brr+)\b|dingin|panas",
    re.IGNORECASE,
)
_WEATHER_CONTEXT = re.compile(
    r"°|\b(?:outside|outdoors?|today|tonight|tomorrow|this (?:morning|afternoon|evening)"
    r"|stay hydrated|hydrated|sunscreen|bundle up|jacket|coat|gloves|scarf"
    r"|out there|hari ini|malam ini|di luar)\b",
    re.IGNORECASE,
)
_DIALOG = re.compile(
    r"\b(?:you|your|i|me|my|we|wear|wearing|outfit|go out|going out|hang ?out"
    r"|walk|style|kamu|aku|pakai|keluar)\b",
    re.IGNORECASE,
)
_ROMANTIC = re.compile(
    r"\b(?:lov(?:e|ed|es|ing|er)|beautiful|handsome|gorgeous|cute|darling|sweetheart"
    r"|crush|uwu|hugs?|heart|cinta|sayang|cantik|ganteng|terpesona)\b|❤️|💕|💘",
    re.IGNORECASE,
)
_COMPLIMENT = re.compile(
    r"\b(?:beautiful|handsome|gorgeous|nice|great job|well done|amazing|awesome"
    r"|thanks|thank you|cantik|ganteng|bagus|terima kasih)\b",
    re.IGNORECASE,
)
_EMERGENCY = re.compile(
    r"danger|warning|alert|extreme|emergency|evacuat|take cover"
    r"|bahaya|peringatan|waspada|ekstrem",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ContentFlags:
    weather_talk: bool = False
    dialog: bool = False
    romantic: bool = False
    compliment: bool = False
    emergency: bool = False

    @classmethod
    def detect(cls, content: str) -> "ContentFlags":
        return cls(
            weather_talk=bool(
                _WEATHER_TALK.search(content)
                or (_TEMPERATURE_WORD.search(content) and _WEATHER_CONTEXT.search(content))
            ),
            dialog=bool(_DIALOG.search(content)),
            romantic=bool(_ROMANTIC.search(content)),
            compliment=bool(_COMPLIMENT.search(content)),
            emergency=bool(_EMERGENCY.search(content)),
        )


@dataclass(frozen=True)
class ScoredCandidate:
    expression: Expression
    score: float
    reason_tags: Tuple[str, ...] = ()
    raw_score: float = 0.0

    @property
    def reason(self) -> str:
        return '+'.join(self.reason_tags)


@dataclass(frozen=True)
class Tally:
    """Running score for one expression while adjustments are applied."""
    expression: Expression
    score: float
    evidence: float
    raw_score: float
    reasons: Tuple[str, ...] = field(default_factory=tuple)

    def scaled(self, factor: float, tag: str) -> "Tally":
        return replace(self, score=self.score * factor, reasons=self.reasons + (tag,))


Tallies = Dict[Expression, Tally]
Adjustment = Callable[[Tallies, ContentFlags], Tallies]


def tally_rule(expression: Expression, rule: ExpressionRule, content: str, lower: str) -> Tally:
    evidence = 0.0
    reasons: List[str] = []

    if any(p.search(content) for p in rule.patterns):
        evidence += PATTERN_POINTS
        reasons.append('pattern')

    keyword_hits = sum(1 for p in rule.keyword_patterns if p.search(lower))
    if keyword_hits:
        evidence += keyword_hits * KEYWORD_POINTS
        reasons.append(f'{keyword_hits}kw')

    if any(p.search(lower) for p in rule.sentiment_patterns):
        evidence += SENTIMENT_POINTS
        reasons.append('sentiment')

    score = evidence + rule.priority * PRIORITY_WEIGHT
    return Tally(
        expression=expression,
        score=score,
        evidence=evidence,
        raw_score=score,
        reasons=tuple(reasons),
    )


def _update(tallies: Tallies, *changed: Tally) -> Tallies:
    result = dict(tallies)
    for t in changed:
        result[t.expression] = t
    return result


def adjust_romance(tallies: Tallies, flags: ContentFlags) -> Tallies:
    """Romance must not be overshadowed by generic positive sentiment."""
    if not flags.romantic:
        return tallies

    changed = [tallies[Expression.SMITTEN].scaled(ROMANCE_BOOST, 'romantic_context')]
    excited = tallies[Expression.EXCITED]
    if excited.score > 0:
        changed.append(excited.scaled(ROMANCE_SUPPRESS, 'suppress_success'))
    return _update(tallies, *changed)


def adjust_weather_leak(tallies: Tallies, flags: ContentFlags) -> Tallies:
    """Keep weather expressions out of unrelated chat."""
    if flags.weather_talk:
        return tallies

    changed = [
        tallies[e].scaled(WEATHER_PENALTY, 'weather_penalty')
        for e in WEATHER_EXPRESSIONS
        if tallies[e].score > 0 and tallies[e].evidence < WEATHER_EVIDENCE_THRESHOLD
    ]
    return _update(tallies, *changed)


def adjust_dialog(tallies: Tallies, flags: ContentFlags) -> Tallies:
    if not flags.dialog or flags.weather_talk:
        return tallies

    changed = []
    for e in SOCIABLE_EXPRESSIONS:
        t = tallies[e]
        if t.evidence > 0:
            changed.append(t.scaled(DIALOG_BOOST, 'dialog_boost'))
        elif e is Expression.SMITTEN and flags.romantic:
            changed.append(replace(
                t,
                score=max(t.score, ROMANCE_FLOOR),
                reasons=t.reasons + ('romance_fallback',),
            ))
    return _update(tallies, *changed)


def adjust_emergency(tallies: Tallies, flags: ContentFlags) -> Tallies:
    if not flags.emergency:
        return tallies
    return _update(tallies, tallies[Expression.ALARMED].scaled(EMERGENCY_BOOST, 'emergency_boost'))


def adjust_compliment(tallies: Tallies, flags: ContentFlags) -> Tallies:
    # Mutually exclusive with the romance suppression
    if not flags.compliment or flags.romantic:
        return tallies
    return _update(tallies, tallies[Expression.EXCITED].scaled(COMPLIMENT_BOOST, 'compliment_boost'))


ADJUSTMENTS: Tuple[Adjustment, ...] = (
    adjust_romance,
    adjust_weather_leak,
    adjust_dialog,
    adjust_emergency,
    adjust_compliment,
)


class ExpressionScorer:
    """Scores free text against the expression rule table."""

    def __init__(self, adjustments: Sequence[Adjustment] = ADJUSTMENTS):
        self.adjustments = tuple(adjustments)

    def tally(self, content: str) -> Tallies:
        """Raw tallies for every expression, before any adjustment."""
        lower = content.lower()
        return {
            expression: tally_rule(expression, rule, content, lower)
            for expression, rule in EXPRESSION_RULES.items()
        }

    def score_expressions(self, content: str, limit: int = 5) -> List[ScoredCandidate]:
        """
        Rank expressions for content.

        Args:
            content: Free text, usually the assistant's reply
            limit: Maximum number of candidates returned

        Returns:
            Candidates with a positive score, best first
        """
        # The salience bonus alone is not a signal
        if not content or not content.strip():
            return []

        flags = ContentFlags.detect(content)
        tallies = self.tally(content)
        for adjust in self.adjustments:
            tallies = adjust(tallies, flags)

        candidates = [
            ScoredCandidate(
                expression=t.expression,
                score=t.score,
                reason_tags=t.reasons,
                raw_score=t.raw_score,
            )
            for t in tallies.values()
            if t.score > 0
        ]
        candidates.sort(key=lambda c: c.score, reverse=True)
        return candidates[:limit]

    def get_best_match(self, content: str) -> Expression:
        ranked = self.score_expressions(content, 1)
        return ranked[0].expression if ranked else DEFAULT_EXPRESSION


class VarietyPolicy:
    """
    Presentation-layer choice among the top candidates.

    A confident top candidate is always used. Otherwise one of the top three
    is drawn with the configured weights so consecutive, similar messages do
    not always show the same face.
    """

    def __init__(self,
                 strong_cutoff: float = 4.0,
                 weights: Tuple[float, ...] = (0.7, 0.2, 0.1),
                 rng: Optional[random.Random] = None):
        self.strong_cutoff = strong_cutoff
        self.weights = weights
        self.rng = rng or random.Random()

    def choose(self, candidates: Sequence[ScoredCandidate]) -> Expression:
        if not candidates:
            return DEFAULT_EXPRESSION

        top = candidates[0]
        if top.score >= self.strong_cutoff or len(candidates) == 1:
            return top.expression

        pool = list(candidates[:len(self.weights)])
        weights = self.weights[:len(pool)]
        return self.rng.choices(pool, weights=weights, k=1)[0].expression
