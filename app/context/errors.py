"""Errors raised by the context engine."""


class ContextEngineError(Exception):
    """Base class for context engine errors."""


class StorageConnectionError(ContextEngineError):
    """Raised when no connection to storage could be established.

    The only failure build_context() surfaces to its caller; every other
    problem degrades a section instead.
    """
