"""Error taxonomy for alert evaluation and notification delivery.

- ValidationError: bad input (unknown metric type or operator, invalid
  update fields). Fatal for the evaluation that raised it.
- NotFoundError: a referenced threshold, alert, user or notification is
  absent. Surfaced to the caller, never retried.
- TransientInfraError: database or queue connectivity problems. Retried by
  the job queue backoff.
- DeliveryError: a channel failed to deliver. Captured in the delivery row
  by the router and never raised past it.
"""


class AlertingError(Exception):
    """Base class for all brand-alerts errors."""


class ValidationError(AlertingError):
    """Input failed validation."""


class UnknownMetricType(ValidationError):
    """The threshold references a metric the snapshot does not carry."""

    def __init__(self, metric_type: str) -> None:
        super().__init__(f"Unknown metric type: {metric_type}")
        self.metric_type = metric_type


class UnknownOperator(ValidationError):
    """The threshold uses an unsupported comparison operator."""

    def __init__(self, operator: str) -> None:
        super().__init__(f"Unknown comparison operator: {operator}")
        self.operator = operator


class NotFoundError(AlertingError):
    """A referenced entity does not exist."""


class TransientInfraError(AlertingError):
    """Database or queue infrastructure is temporarily unavailable."""


class DeliveryError(AlertingError):
    """A notification channel could not deliver."""
