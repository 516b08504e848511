"""Gateway exception hierarchy.

Frame-level errors (``CodecError`` and subclasses) live in
``ntn_gateway.protocol.frames`` next to the codec that raises them.
"""


class GatewayError(Exception):
    """Base class for gateway errors."""


class TransportError(GatewayError):
    """Byte-stream transport failure."""


class TransportOpenError(TransportError):
    """The transport could not be opened. Fatal to the connect attempt."""


class TransportIoError(TransportError):
    """A read or write on an open transport failed."""


class HandshakeVerificationFailed(GatewayError):
    """The unlock verification read returned no model name."""
