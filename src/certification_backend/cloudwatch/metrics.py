import logging
import typing

from aws_embedded_metrics import metric_scope

_LOGGER = logging.getLogger(__name__)


class MetricsManager:
    """
    Collects counters for one lambda invocation and emits them as CloudWatch embedded metrics on flush.
    Handlers and the progression core only call put_metric; flushing belongs to the lambda entry point.
    """

    def __init__(self, namespace: str):
        self._namespace = namespace
        self._metrics: dict[str, tuple[int, str]] = {}
        self._dimensions: dict[str, str] = {}

    @property
    def queued_metrics(self) -> dict[str, int]:
        return {name: value for name, (value, _) in self._metrics.items()}

    def set_dimension(self, name: str, value: str):
        """Adds a dimension to all metrics emitted in this context."""
        self._dimensions[name] = value

    def put_metric(self, name: str, value: int, unit: str = "Count"):
        """Queues a metric. Repeated names within one invocation accumulate."""
        previous, _ = self._metrics.get(name, (0, unit))
        self._metrics[name] = (previous + value, unit)
        _LOGGER.info(f"Queued metric '{name}' with value {value} in namespace '{self._namespace}'")

    @metric_scope
    def flush(self, metrics: typing.Any):
        metrics.set_namespace(self._namespace)
        if self._dimensions:
            metrics.put_dimensions(dict(self._dimensions))
        for name, (value, unit) in self._metrics.items():
            metrics.put_metric(name, value, unit)

        _LOGGER.info(f"Flushed {len(self._metrics)} metrics to namespace '{self._namespace}'.")
        self._metrics = {}
