"""Query module for filtering and sorting transactions."""

from bookkeeper.queries.executor import QueryExecutionError, TransactionQueryExecutor

__all__ = ["TransactionQueryExecutor", "QueryExecutionError"]
