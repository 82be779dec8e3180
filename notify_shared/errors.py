"""
Error taxonomy shared by the broker client, the codec and the processor.

A simulated processing failure is deliberately absent: it is the FAILED
outcome of a message, not an exception.
"""


class PipelineError(Exception):
    """Base class for every error raised by the notification pipeline."""


class BrokerConnectionError(PipelineError, ConnectionError):
    """The broker could not be reached or refused the credentials."""


class ChannelUnavailableError(PipelineError):
    """A publish or consume was attempted while no channel is open."""


class DecodeError(PipelineError, ValueError):
    """Envelope bytes could not be turned into a known envelope shape."""


class InvalidTransitionError(PipelineError):
    """A status write would break PENDING -> PROCESSING -> terminal."""

    def __init__(self, identifier: str, current, requested):
        self.identifier = identifier
        self.current = current
        self.requested = requested
        super().__init__(
            f"mensagem_id={identifier} cannot move from {current} to {requested}"
        )


class NotificationNotFoundError(PipelineError, KeyError):
    """No notification record exists for the given id."""

    def __str__(self) -> str:
        return f"notification not found: {self.args[0]}"


class DuplicateMessageError(PipelineError):
    """The identifier is already tracked by the pipeline."""
