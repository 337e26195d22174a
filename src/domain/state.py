from enum import Enum, auto


class SessionState(Enum):
    IDLE = auto()
    STARTING = auto()
    LIVE = auto()
    STOPPING = auto()
    TERMINATED = auto()


VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.IDLE: {SessionState.STARTING},
    SessionState.STARTING: {SessionState.LIVE, SessionState.STOPPING, SessionState.TERMINATED},
    SessionState.LIVE: {SessionState.STOPPING},
    SessionState.STOPPING: {SessionState.TERMINATED},
    SessionState.TERMINATED: set(),
}


class TerminationReason(str, Enum):
    USER_STOP = "user_stop"
    SUPERSEDED = "superseded"
    SOURCE_FAILED = "source_failed"
    SOURCE_UNAVAILABLE = "source_unavailable"
    SOURCE_ENDED = "source_ended"
    BACKEND_EXHAUSTED = "backend_exhausted"
    CHANNEL_CLOSED = "channel_closed"

    @property
    def is_failure(self) -> bool:
        return self in (
            TerminationReason.SOURCE_FAILED,
            TerminationReason.SOURCE_UNAVAILABLE,
            TerminationReason.BACKEND_EXHAUSTED,
        )


class InvalidTransitionError(Exception):
    pass


def validate_transition(current: SessionState, target: SessionState) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition from {current.name} to {target.name}")
