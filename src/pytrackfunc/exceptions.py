"""Custom exceptions for the instrumentation pipeline."""


class PyTrackFuncError(Exception):
    """Base class for all pytrackfunc errors."""


class TransformError(PyTrackFuncError):
    """Error confined to a single source unit. The batch continues."""


class ReadError(TransformError):
    """Source file could not be read."""


class ParseError(TransformError):
    """Source file is not valid Python."""


class FormatError(TransformError):
    """Rendered output failed validation. Nothing was written."""


class WriteError(TransformError):
    """Rendered output could not be written back."""


class RootResolutionError(TransformError):
    """Build descriptor is missing or names no root package."""


class DiscoveryError(PyTrackFuncError):
    """Source files could not be enumerated. Fatal for the run."""


class BootstrapError(PyTrackFuncError):
    """Runtime module could not be materialized. Fatal for the run."""


class LogNotFoundError(PyTrackFuncError):
    """Trace log to summarize does not exist."""
