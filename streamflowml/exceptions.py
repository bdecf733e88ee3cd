"""
Exception types raised by streamflowml
"""


class StreamflowMLError(Exception):
    """Base class for streamflowml errors"""


class ConfigurationMismatchError(StreamflowMLError, ValueError):
    """
    Data does not match what the configuration or recipe declares

    Raised when an expected predictor, a key column, or a column named in a
    recipe step is absent from the data.
    """


class DegenerateDataError(StreamflowMLError, ValueError):
    """Cleaning left nothing to model (e.g. every row was dropped)"""
