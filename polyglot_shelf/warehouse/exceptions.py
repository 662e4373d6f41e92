"""
Warehouse Loader Errors

Every failure of a rebuild is a WarehouseLoadError. Callers that only need
"did the ETL run succeed" catch the base class; the subclasses say which
stage broke.
"""

from typing import Optional


class WarehouseLoadError(Exception):
    """A warehouse rebuild did not commit."""

    public_message = "ETL failed"


class ConnectivityFailure(WarehouseLoadError):
    """A store was unreachable while extracting or loading."""

    def __init__(self, store: str, detail: Optional[str] = None):
        self.store = store
        self.detail = detail
        super().__init__(f"{store} unavailable: {detail}" if detail else f"{store} unavailable")


class TransformFailure(WarehouseLoadError):
    """The extracted snapshot could not be turned into dimension and fact rows."""


class TransactionFailure(WarehouseLoadError):
    """The relational store rejected the load transaction."""
