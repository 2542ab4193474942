"""
Storage Error Hierarchy

Every failure raised by the crawl state store derives from StorageError so the
crawler can catch one type at its boundary. "Not found" is not an error here:
lookups that miss return None.
"""


class StorageError(RuntimeError):
    """Base class for crawl state storage failures."""


class StoreConnectionError(StorageError):
    """The database file could not be opened or did not answer a ping."""


class SchemaError(StorageError):
    """Creating or dropping tables and indexes failed."""


class QueryError(StorageError):
    """A per-record statement failed to prepare, execute or return rows."""


class StoreClosedError(QueryError):
    """An operation was attempted after the store was closed."""
