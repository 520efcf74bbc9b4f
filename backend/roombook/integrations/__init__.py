from roombook.integrations.errors import (
    ProviderAuthFailed,
    ProviderError,
    ProviderUnavailable,
    RoomNotMapped,
)

__all__ = [
    "ProviderAuthFailed",
    "ProviderError",
    "ProviderUnavailable",
    "RoomNotMapped",
]
