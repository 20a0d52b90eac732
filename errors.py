class RelayError(Exception):
    """Base class for errors raised by the relay core."""


class InvalidEnvelopeError(RelayError):
    """Inbound frame is not a well-formed envelope."""

    reply = "Invalid message format"


class UnknownEnvelopeTypeError(RelayError):
    """Inbound envelope carries a type the relay does not handle."""

    reply = "Unknown message type"

    def __init__(self, envelope_type):
        super().__init__(f"Unknown envelope type: {envelope_type!r}")
        self.envelope_type = envelope_type


class RoomKeyCollisionError(RelayError):
    """No unused room key could be generated within the allowed attempts."""
