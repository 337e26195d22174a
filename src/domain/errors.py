class LivescribeError(Exception):
    pass


class InvalidRequest(LivescribeError):
    pass


class SourceUnavailable(LivescribeError):
    pass


class SourceFailed(LivescribeError):
    def __init__(self, reason: str, returncode: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.returncode = returncode


class TranscriptionFailed(LivescribeError):
    def __init__(self, reason: str, hard: bool = True) -> None:
        super().__init__(reason)
        self.reason = reason
        self.hard = hard


class DispatcherBusy(LivescribeError):
    pass


class BackendExhausted(DispatcherBusy):
    pass


class ChannelLost(LivescribeError):
    pass


class MaxReconnectAttemptsReached(ChannelLost):
    def __init__(self, attempts: int) -> None:
        super().__init__(f"Maximum reconnection attempts reached ({attempts})")
        self.attempts = attempts
