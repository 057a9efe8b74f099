class ObjectNotFoundException(Exception):
    """Exception raised when a query that must return a row returned none."""

    def __init__(self, message: str = "The requested object was not found."):
        super().__init__(message)


class InvalidPageRequestException(ValueError):
    """Exception raised when pagination parameters are out of range."""

    def __init__(self, message: str = "The page request is invalid."):
        super().__init__(message)


class QueryExecutionException(Exception):
    """Exception raised when the backend fails to execute a query."""

    def __init__(self, message: str = "Query execution failed."):
        super().__init__(message)
