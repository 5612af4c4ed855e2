"""Exceptions raised by the debate orchestrator."""


class DebateError(Exception):
    """Base class for orchestration failures."""


class SettingsValidationError(DebateError):
    """Raised when a room cannot be debated with its participants or settings."""


class InvalidStateError(DebateError):
    """Raised when an operation is not allowed in the orchestrator's current state."""

    def __init__(self, operation: str, state: str) -> None:
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while debate is {state}")


class SpeakerTimeoutError(DebateError):
    """Raised when a persona does not answer within timeout_per_round."""

    def __init__(self, persona_name: str, timeout_ms: int) -> None:
        self.persona_name = persona_name
        self.timeout_ms = timeout_ms
        super().__init__(f"{persona_name} timed out after {timeout_ms}ms")
