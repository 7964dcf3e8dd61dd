"""
Search indexing and query engine package.

This package provides the pure-Python search stack behind the engine adapter:
- schema: Field types and the per-index schema derived from CSV headers
- analyzers: Tokenizers and filters (lowercase, stop, stemming)
- query / query_parser: Native query tree and the classic query syntax
- executor: BM25 evaluation of query trees over SQLite postings
- engine: ``open_index``/``remove_index`` and the ``SqliteIndex`` adapter
"""
