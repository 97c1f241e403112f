from __future__ import annotations


class DepthSyncError(Exception):
    """Base class for order-book synchronization errors."""


class DecodeError(DepthSyncError):
    """Malformed or unrecognized wire message. The book is left untouched."""


class OrderIdError(DepthSyncError):
    def __init__(self, order_id, message: str = "") -> None:
        self.order_id = order_id
        super().__init__(message or f"order id {order_id!r}")


class UnknownIdError(OrderIdError):
    def __init__(self, order_id) -> None:
        super().__init__(order_id, f"unknown order id {order_id!r}")


class DuplicateIdError(OrderIdError):
    def __init__(self, order_id) -> None:
        super().__init__(order_id, f"duplicate order id {order_id!r}")


class VolumeError(DepthSyncError):
    """A single row could not be given a volume; the row is skipped."""


class InvalidVolumeConfig(VolumeError):
    pass


class VolumeConversionError(VolumeError):
    pass


class SinkWriteError(DepthSyncError):
    pass


class SnapshotFetchError(DepthSyncError):
    """Initial snapshot unavailable; the stream cannot synchronize."""
