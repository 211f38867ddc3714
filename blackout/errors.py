"""
Exception taxonomy for the blackout pipeline.

Every class here is fatal: the step that raises it is recorded as an error
and the run stops. A step that simply produces zero features is not an
error and never raises; it is reported with status "empty" instead.
"""


class BlackoutAnalysisError(Exception):
    """Base class for all pipeline failures."""


class DataAlignmentError(BlackoutAnalysisError, ValueError):
    """Rasters or layers cannot be combined because their CRS or grid differ,
    or a layer carries no CRS at all."""


class GridMismatchError(DataAlignmentError):
    """Two rasters that must be cell-aligned are not (shape, transform or CRS)."""


class GeometryValidityError(BlackoutAnalysisError, ValueError):
    """Geometries are still invalid after the repair step."""


class IdentifierMismatchError(BlackoutAnalysisError, KeyError):
    """Join keys do not line up after normalisation."""

    def __str__(self):
        # KeyError repr-quotes its message; keep it readable in logs.
        return str(self.args[0]) if self.args else ""
