"""Domain layer - documents, open modes and query results.

No dependencies on the storage engine or the CLI live here.
"""

from csv_indexer.domain.model import Document, IndexRunResult, OpenMode
from csv_indexer.domain.search import FindResult, ResultRow


__all__ = [
    "Document",
    "FindResult",
    "IndexRunResult",
    "OpenMode",
    "ResultRow",
]
