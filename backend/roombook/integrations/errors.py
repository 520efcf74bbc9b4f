class ProviderError(Exception):
    code = "PROVIDER_ERROR"


class ProviderUnavailable(ProviderError):
    code = "PROVIDER_UNAVAILABLE"


class ProviderAuthFailed(ProviderError):
    code = "PROVIDER_AUTH_FAILED"


class RoomNotMapped(ProviderError):
    code = "ROOM_NOT_MAPPED"
