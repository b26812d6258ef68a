"""Tagged errors raised by the catalog, store, query and translation layers.

Every error carries a machine-checkable ``kind`` and the HTTP status the API
layer answers with. Errors raised while running a DSL query also carry the
query text that was attempted (``dsl_query``).
"""


class AssetTrackerError(Exception):
    kind = "Error"
    status_code = 500

    def __init__(self, message: str, dsl_query: str | None = None):
        super().__init__(message)
        self.message = message
        self.dsl_query = dsl_query

    def to_dict(self) -> dict:
        payload = {"error": self.kind, "message": self.message}
        if self.dsl_query is not None:
            payload["dsl_query"] = self.dsl_query
        return payload


class NotFound(AssetTrackerError):
    kind = "NotFound"
    status_code = 404


class Duplicate(AssetTrackerError):
    kind = "Duplicate"
    status_code = 400


class AmbiguousName(AssetTrackerError):
    kind = "AmbiguousName"
    status_code = 400


class InvalidName(AssetTrackerError):
    kind = "InvalidName"
    status_code = 400


class InvalidType(AssetTrackerError):
    kind = "InvalidType"
    status_code = 400


class InvalidEnum(AssetTrackerError):
    kind = "InvalidEnum"
    status_code = 400


class InvalidEnumValue(AssetTrackerError):
    kind = "InvalidEnumValue"
    status_code = 400


class CoercionError(AssetTrackerError):
    kind = "CoercionError"
    status_code = 400


class ParseError(AssetTrackerError):
    """DSL syntax violation. ``reason`` is the short machine-readable cause."""

    kind = "ParseError"
    status_code = 400

    def __init__(self, reason: str, message: str | None = None, dsl_query: str | None = None):
        super().__init__(message or reason, dsl_query=dsl_query)
        self.reason = reason

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["reason"] = self.reason
        return payload


class UnsupportedOperator(AssetTrackerError):
    kind = "UnsupportedOperator"
    status_code = 400


class InvalidFilter(AssetTrackerError):
    """Query parameters that do not form a complete filter."""

    kind = "InvalidFilter"
    status_code = 400


class NoResults(AssetTrackerError):
    kind = "NoResults"
    status_code = 404


class BatchRejected(AssetTrackerError):
    """No entry of a batch could be written; ``failures`` lists why."""

    kind = "BatchRejected"
    status_code = 400

    def __init__(self, message: str, failures: list[dict]):
        super().__init__(message)
        self.failures = failures

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["failures"] = self.failures
        return payload


class UpstreamTranslationError(AssetTrackerError):
    kind = "UpstreamTranslationError"
    status_code = 502
