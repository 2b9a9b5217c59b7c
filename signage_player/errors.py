class PlayerError(Exception):
    pass


class FetchFailure(PlayerError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(PlayerError):
    pass


class ChannelDisconnected(PlayerError):
    pass
