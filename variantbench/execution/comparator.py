"""Result comparator: scores variations and picks the best configuration."""

from collections.abc import Mapping
from uuid import UUID

from variantbench.exceptions import ComparisonError
from variantbench.execution.models import ComparisonResult, VariationResult
from variantbench.execution.scoring import DEFAULT_SCORERS, MetricScorer
from variantbench.observability.logging import get_logger

logger = get_logger(__name__)


class ResultComparator:
    """Ranks successful variations by an ordered list of metrics.

    The best configuration has the highest score under the first metric.
    Exact ties fall through to the next metric; a full tie keeps the
    earliest configuration in input order.
    """

    def __init__(self, scorers: Mapping[str, MetricScorer] | None = None) -> None:
        self._scorers: dict[str, MetricScorer] = dict(
            DEFAULT_SCORERS if scorers is None else scorers
        )

    @property
    def metric_names(self) -> list[str]:
        return sorted(self._scorers)

    def supports(self, metric: str) -> bool:
        return metric in self._scorers

    def register_metric(self, name: str, scorer: MetricScorer) -> None:
        """Add or replace a scorer; higher scores must mean better."""
        self._scorers[name] = scorer

    def unknown_metrics(self, metrics: list[str]) -> list[str]:
        return [m for m in metrics if m not in self._scorers]

    def compare(
        self,
        results: list[VariationResult],
        metrics: list[str],
        *,
        execution_run_id: UUID,
    ) -> ComparisonResult:
        """Score every successful variation and select the best one.

        Args:
            results: Variation results in configuration input order
            metrics: Metric names; the first decides the best pick
            execution_run_id: Run the comparison belongs to

        Raises:
            ComparisonError: No metrics, unknown metrics, or no successful
                variations to compare
        """
        if not metrics:
            raise ComparisonError("at least one metric required")
        unknown = self.unknown_metrics(metrics)
        if unknown:
            raise ComparisonError(f"unknown comparison metric(s): {', '.join(unknown)}")

        candidates = [r for r in results if r.response.succeeded]
        if not candidates:
            raise ComparisonError("no successful variations to compare")

        configuration_scores: dict[UUID, dict[str, float]] = {}
        ranking: list[tuple[tuple[float, ...], int, VariationResult]] = []
        for index, result in enumerate(candidates):
            scores = {metric: float(self._scorers[metric](result)) for metric in metrics}
            configuration_scores[result.configuration.id] = scores
            ranking.append((tuple(scores[m] for m in metrics), -index, result))

        _, _, best = max(ranking, key=lambda item: (item[0], item[1]))
        primary = metrics[0]
        best_score = configuration_scores[best.configuration.id][primary]

        logger.info(
            "comparison_completed",
            execution_run_id=str(execution_run_id),
            metrics=metrics,
            candidates=len(candidates),
            best_configuration_id=str(best.configuration.id),
        )

        return ComparisonResult(
            execution_run_id=execution_run_id,
            comparison_type="single_metric" if len(metrics) == 1 else "multi_metric",
            metric_name=primary,
            metrics=list(metrics),
            configuration_scores=configuration_scores,
            best_configuration_id=best.configuration.id,
            best_configuration=best.configuration,
            analysis_notes=(
                f"Best configuration: {best.configuration.variation_name} "
                f"({primary}={best_score:.3f}); compared {len(candidates)} of "
                f"{len(results)} variations"
            ),
        )
