"""Expression resolution: local scoring with optional model confirmation."""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

from loguru import logger

from .expressions import (
    DEFAULT_EXPRESSION,
    EXPRESSION_RULES,
    Expression,
    nearest_expression,
    parse_expression,
)
from .llm_client import CandidateImage, VisionVerdict
from .scoring import ExpressionScorer, ScoredCandidate, VarietyPolicy


MIN_CONFIDENCE = 0.5
MAX_CONFIDENCE = 1.0
# Score at which local confidence saturates
CONFIDENCE_SCORE_CAP = 20.0
NEAREST_MATCH_CONFIDENCE = 0.6
# Always offered to the model alongside the scored shortlist
BASELINE_CANDIDATES = (Expression.IDLE, Expression.THINKING)


class VisionCapability(Protocol):
    async def analyze_expression_images(self,
                                        content: str,
                                        candidates: Sequence[CandidateImage]) -> VisionVerdict:
        ...


@dataclass(frozen=True)
class ExpressionResult:
    expression: Expression
    confidence: float
    reason: str
    source: str = "local"


def score_to_confidence(score: float) -> float:
    """Map a scorer score onto [0.5, 1.0], linearly up to CONFIDENCE_SCORE_CAP."""
    bounded = min(max(score, 0.0), CONFIDENCE_SCORE_CAP)
    return MIN_CONFIDENCE + (MAX_CONFIDENCE - MIN_CONFIDENCE) * bounded / CONFIDENCE_SCORE_CAP


class ExpressionResolver:
    """
    Picks the mascot expression for a piece of text.

    Idle -> Scoring -> [ConfirmingWithVision] -> Resolved. A failed or
    unusable confirmation falls back to local scoring once; it is never
    retried and never raised.
    """

    def __init__(self,
                 scorer: Optional[ExpressionScorer] = None,
                 vision: Optional[VisionCapability] = None,
                 candidate_count: int = 5,
                 mascot_dir: Optional[Path] = None,
                 variety: Optional[VarietyPolicy] = None):
        self.scorer = scorer or ExpressionScorer()
        self.vision = vision
        self.candidate_count = candidate_count
        self.mascot_dir = mascot_dir
        self.variety = variety

    def resolve_from_text(self, content: str, context: Optional[Dict[str, str]] = None) -> ExpressionResult:
        """
        Resolve locally.

        Args:
            content: Text to analyze
            context: Optional hints such as topic, sentiment or user mood;
                their values are scored along with the content
        """
        text = content or ''
        if context:
            hints = ' '.join(v for v in context.values() if v)
            text = f"{text}\n{hints}" if hints else text

        if not text.strip():
            return ExpressionResult(DEFAULT_EXPRESSION, MIN_CONFIDENCE, "no signal")

        ranked = self.scorer.score_expressions(text, limit=max(3, self.candidate_count))
        if not ranked:
            return ExpressionResult(DEFAULT_EXPRESSION, MIN_CONFIDENCE, "no signal")

        best = ranked[0]
        expression = self.variety.choose(ranked) if self.variety else best.expression
        chosen = next(c for c in ranked if c.expression is expression)
        return ExpressionResult(
            expression=expression,
            confidence=score_to_confidence(chosen.score),
            reason=f"local scoring ({chosen.reason or 'priority'})",
        )

    def _candidates(self, ranked: List[ScoredCandidate]) -> List[CandidateImage]:
        expressions = [c.expression for c in ranked[:self.candidate_count]]
        for baseline in BASELINE_CANDIDATES:
            if baseline not in expressions:
                expressions.append(baseline)

        candidates = []
        for expression in expressions:
            rule = EXPRESSION_RULES[expression]
            image = self.mascot_dir / rule.image if self.mascot_dir else None
            candidates.append(CandidateImage(expression, rule.description, image))
        return candidates

    async def resolve_with_vision_confirmation(self, content: str) -> ExpressionResult:
        """Ask the vision capability to confirm, falling back to local scoring."""
        if self.vision is None or not (content or '').strip():
            return self.resolve_from_text(content)

        ranked = self.scorer.score_expressions(content, limit=self.candidate_count)
        try:
            verdict = await self.vision.analyze_expression_images(content, self._candidates(ranked))
        except Exception as e:
            logger.warning(f"Expression confirmation failed, using local scoring: {e}")
            return self.resolve_from_text(content)

        expression = parse_expression(verdict.selected_expression)
        if expression is not None:
            confidence = min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, verdict.confidence))
            return ExpressionResult(expression, confidence, verdict.reason, source="vision")

        expression = nearest_expression(verdict.selected_expression)
        if expression is not None:
            logger.debug(f"Adjusted unknown expression {verdict.selected_expression!r} to {expression.value}")
            return ExpressionResult(
                expression,
                NEAREST_MATCH_CONFIDENCE,
                f"adjusted from {verdict.selected_expression!r}",
                source="vision",
            )

        logger.warning(f"Unknown expression {verdict.selected_expression!r}, using local scoring")
        return self.resolve_from_text(content)
