class ReaderError(Exception):
    """Base class for errors whose message is safe to show to a user."""


class DiscoveryError(ReaderError):
    pass


class ExtractionError(ReaderError):
    pass


class FeedError(ReaderError):
    pass


class OpmlError(ReaderError):
    pass


class StorageError(ReaderError):
    pass


class DuplicateKeyError(StorageError):
    """Insert hit a unique constraint (e.g. user, feed, guid)."""
