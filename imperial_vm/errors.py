"""
Exceptions raised while loading or querying the velocity model.

Out-of-domain queries are not errors: they return the NA sentinel.
"""


class ConfigurationError(ValueError):
    """The configuration file is missing or leaves a required field unset."""


class ProjectionSetupError(RuntimeError):
    """The projection for the configured zone could not be constructed."""


class ProjectionError(RuntimeError):
    """A coordinate transform failed while servicing a query."""


class StorageError(OSError):
    """The grid data file is missing, unreadable or too short for the grid."""
