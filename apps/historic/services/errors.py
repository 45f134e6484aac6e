class HistoricServiceError(Exception):
    """Base exception for historic weather service errors."""
    pass


class RemoteSourceError(HistoricServiceError):
    """Remote request failed or returned unusable data."""
    pass


class UnsupportedContentTypeError(RemoteSourceError):
    """Response content type is neither JSON nor text."""
    pass


class StorageError(HistoricServiceError):
    """Persistent store read or write failed."""
    pass
