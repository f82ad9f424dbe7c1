"""
Error taxonomy for the AOI Layer Analyzer.

Geometry and input errors are fatal to the one area they belong to; the
coordinator marks that area Failed and carries on with the rest of a batch.
Capacity, lookup and state errors indicate misuse by the caller.

A missing or empty reference layer is deliberately NOT an error: it
contributes zero matches to an analysis.
"""

from typing import Optional


class AreaAnalysisError(Exception):
    """Base class for every error raised by the analyzer."""


class ConfigurationError(AreaAnalysisError):
    """Invalid analysis options or layer definition."""


class GeometryError(AreaAnalysisError):
    """
    A geometry primitive received degenerate or unsupported input.

    Attributes:
        operation: Primitive that failed ('area', 'length', 'buffer', 'intersects')
        detail: Human-readable description of the failure
        layer_key: Reference layer being processed when the failure happened, if any
    """

    def __init__(self, operation: str, detail: str, layer_key: Optional[str] = None):
        self.operation = operation
        self.detail = detail
        self.layer_key = layer_key
        super().__init__(self._format())

    def _format(self) -> str:
        where = f" (layer '{self.layer_key}')" if self.layer_key else ''
        return f"{self.operation} failed{where}: {self.detail}"


class MissingInputError(AreaAnalysisError):
    """No Polygon or MultiPolygon feature was found in the uploaded geometry."""


class AnalysisError(AreaAnalysisError):
    """An analysis run was aborted; the area is left in the Failed state."""

    def __init__(self, area_id: int, reason: str):
        self.area_id = area_id
        self.reason = reason
        super().__init__(f"Analysis of area {area_id} failed: {reason}")


class AnalysisCancelledError(AnalysisError):
    """The caller set the cancel token while the run was in progress."""

    def __init__(self, area_id: int):
        super().__init__(area_id, 'cancelled by caller')


class CapacityExceededError(AreaAnalysisError):
    """The area collection already holds its maximum number of entries."""

    def __init__(self, max_areas: int):
        self.max_areas = max_areas
        super().__init__(f"Maximum of {max_areas} areas reached")


class NotFoundError(AreaAnalysisError):
    """No area exists with the requested id."""

    def __init__(self, area_id: int):
        self.area_id = area_id
        super().__init__(f"Area {area_id} not found")


class InvalidStateError(AreaAnalysisError):
    """The area is not in a state that allows the requested transition."""

    def __init__(self, area_id: int, state: str, action: str = 'start an analysis'):
        self.area_id = area_id
        self.state = state
        super().__init__(f"Area {area_id} cannot {action} while {state}")
