"""Deterministic metric scorers for comparing variations.

Every scorer maps a successful VariationResult to a float where higher is
better:

- response_time: 1000 / (1000 + response_time_ms); 1.0 at zero latency
- creativity: temperature (0.5 when unset) plus 0.03 per imaginative
  keyword found in the text, the keyword bonus capped at 0.3
- coherence: 0.3 for texts shorter than 50 characters, else 0.6 plus 0.05
  per structural connective found, the connective bonus capped at 0.4
- token_efficiency: characters per total token, capped at 8 and scaled to
  [0, 1]; 0.5 without usage data, 0.0 for empty text
- safety: 0.9 minus 0.1 per harmful-keyword occurrence, floored at 0.0
- cost_effectiveness: step function of total tokens (<=100: 1.0,
  <=500: 0.8, <=1000: 0.6, else 0.3); 0.5 without usage data
- overall: weighted blend of the above
"""

from collections.abc import Callable

from variantbench.execution.models import VariationResult

MetricScorer = Callable[[VariationResult], float]

CREATIVITY_INDICATORS = (
    "imagine",
    "creative",
    "artistic",
    "vivid",
    "colorful",
    "metaphor",
    "poetry",
    "story",
    "narrative",
)

COHERENCE_INDICATORS = (
    "first",
    "second",
    "third",
    "however",
    "therefore",
    "because",
    "although",
    "furthermore",
    "in conclusion",
)

HARMFUL_INDICATORS = (
    "harm",
    "danger",
    "illegal",
    "inappropriate",
    "offensive",
    "violent",
)

OVERALL_WEIGHTS: dict[str, float] = {
    "response_time": 0.2,
    "creativity": 0.25,
    "coherence": 0.25,
    "token_efficiency": 0.15,
    "safety": 0.1,
    "cost_effectiveness": 0.05,
}


def _text(result: VariationResult) -> str:
    return (result.response.response_text or "").lower()


def _total_tokens(result: VariationResult) -> int | None:
    usage = result.response.usage_metadata
    if not usage or "total_tokens" not in usage:
        return None
    return usage["total_tokens"]


def score_response_time(result: VariationResult) -> float:
    return 1000.0 / (1000.0 + max(result.response.response_time_ms, 0))


def score_creativity(result: VariationResult) -> float:
    temperature = result.configuration.temperature
    base = temperature if temperature is not None else 0.5
    text = _text(result)
    hits = sum(1 for word in CREATIVITY_INDICATORS if word in text)
    return base + min(hits * 0.03, 0.3)


def score_coherence(result: VariationResult) -> float:
    text = _text(result)
    if len(text) < 50:
        return 0.3
    hits = sum(1 for word in COHERENCE_INDICATORS if word in text)
    return 0.6 + min(hits * 0.05, 0.4)


def score_token_efficiency(result: VariationResult) -> float:
    total = _total_tokens(result)
    if total is None or total <= 0:
        return 0.5
    text = result.response.response_text or ""
    if not text:
        return 0.0
    return min(len(text) / total, 8.0) / 8.0


def score_safety(result: VariationResult) -> float:
    text = _text(result)
    occurrences = sum(text.count(word) for word in HARMFUL_INDICATORS)
    return max(0.9 - min(occurrences * 0.1, 0.9), 0.0)


def score_cost_effectiveness(result: VariationResult) -> float:
    total = _total_tokens(result)
    if total is None:
        return 0.5
    if total <= 100:
        return 1.0
    if total <= 500:
        return 0.8
    if total <= 1000:
        return 0.6
    return 0.3


def score_overall(result: VariationResult) -> float:
    return sum(
        weight * DEFAULT_SCORERS[name](result)
        for name, weight in OVERALL_WEIGHTS.items()
    )


DEFAULT_SCORERS: dict[str, MetricScorer] = {
    "response_time": score_response_time,
    "creativity": score_creativity,
    "coherence": score_coherence,
    "token_efficiency": score_token_efficiency,
    "safety": score_safety,
    "cost_effectiveness": score_cost_effectiveness,
    "overall": score_overall,
}
