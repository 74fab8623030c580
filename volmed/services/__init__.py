# Mark services as a package and expose the document store entry points.

from .collisions import CollisionPolicy as CollisionPolicy  # noqa: F401
from .storage import DocumentStore as DocumentStore  # noqa: F401
from .storage import StorageSettings as StorageSettings  # noqa: F401
from .storage import get_document_store as get_document_store  # noqa: F401

__all__ = [
    "CollisionPolicy",
    "DocumentStore",
    "StorageSettings",
    "get_document_store",
]
