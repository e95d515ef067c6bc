class DispatchError(Exception):
    """Base class for every error a backend raises from ``do``."""


class InvalidRequestError(DispatchError):
    """The descriptor cannot be sent (bad method, unparseable URL). Never retried."""


class TransportError(DispatchError):
    """Connection, TLS or protocol failure reported by the transport."""


class TransportTimeoutError(TransportError):
    """The transport gave up waiting on the network."""


class SerializationError(DispatchError):
    """The descriptor could not be encoded for the remote function."""


class InvocationError(DispatchError):
    """The remote function could not be invoked or reported a failure."""


class DeserializationError(DispatchError):
    """The remote function returned a payload that is not a valid response."""
