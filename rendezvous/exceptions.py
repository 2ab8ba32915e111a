"""Rendezvous exception classes."""


class RendezvousError(Exception):
    """Base exception for all rendezvous errors."""
    pass


class TransportError(RendezvousError):
    """Raised when the signaling channel cannot be opened or is closed."""
    pass


class NegotiationError(RendezvousError):
    """Raised when the peer-connection engine rejects a negotiation step."""
    pass


class MediaError(RendezvousError):
    """Raised when local media cannot be captured."""
    pass
