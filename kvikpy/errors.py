"""Exceptions raised by the package."""


class KvikError(Exception):
    """Base class of all package errors."""


class InvalidArgumentError(KvikError, ValueError):
    """An argument or configuration value is invalid."""


class NotFoundError(KvikError, LookupError):
    """The requested item does not exist."""


class NotSupportedError(KvikError):
    """The operation is not supported."""


class InvalidSizeError(KvikError, ValueError):
    """The supplied data is too big for processing."""


class DeliveryTimeoutError(KvikError, TimeoutError):
    """No response arrived in time."""


class NoGatewayError(KvikError):
    """No gateway is known."""


class MessageProcessingError(KvikError):
    """The peer failed to process a message."""


class DuplicateMessageIdError(KvikError):
    """A message carried an already seen ID."""


class InvalidTimestampError(KvikError):
    """A message carried a timestamp outside the accepted window."""


class UnknownSenderError(KvikError):
    """A message came from an unexpected sender."""


class TooManyFailedAttemptsError(KvikError):
    """An operation failed too many times in a row."""