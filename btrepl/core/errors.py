"""Domain-specific errors for btrepl."""


class BtreplError(Exception):
    """Base error for btrepl."""


class ConfigError(BtreplError):
    """Raised when a config file cannot be read or does not match the schema."""


class InvalidAddressError(BtreplError):
    """Raised when a Bluetooth address is not in XX:XX:XX:XX:XX:XX form."""


class DiscoveryError(BtreplError):
    """Base error for service discovery."""


class SdpUnavailableError(DiscoveryError):
    """Raised when an SDP session cannot be opened."""


class ServiceNotFoundError(DiscoveryError):
    """Raised when no device advertising the service could be found."""


class TransportError(BtreplError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on RFCOMM connect failures."""


class TransportSendError(TransportError):
    """Raised when sending or receiving on an open session fails."""


class ProtocolError(BtreplError):
    """Raised when the peer sends a frame the decoder cannot accept."""
