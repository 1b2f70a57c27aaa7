"""
Exceptions raised by the data loader.

Only fatal conditions are raised. Unmatched columns, row level lookup failures
and failed lookup queries are returned in the result structures instead.
"""


class DataLoaderError(Exception):
    """Base class for all data loader errors."""


class SchemaError(DataLoaderError):
    """The object description is missing or malformed."""


class MappingError(DataLoaderError):
    """The field mapping cannot be used for the requested operation."""


class PrepareDataError(DataLoaderError):
    """Required input for preparing records is missing."""
