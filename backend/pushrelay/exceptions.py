"""Error taxonomy shared by the relay core and the HTTP layer."""
from typing import List, Optional


class RelayError(Exception):
    """Base class for every error the relay core raises."""


class ValidationError(RelayError):
    """A required request field is missing or malformed."""


class NotFound(RelayError):
    """Unknown device token or delivery key."""


class InvalidCredential(RelayError):
    """Device secret or IV fails its length check."""


class InvalidKeyLength(InvalidCredential):
    """Cipher key is not 16, 24 or 32 bytes."""


class InvalidIVLength(InvalidCredential):
    """IV length does not match the cipher block size."""


class UpstreamUnavailable(RelayError):
    """No upstream push client is configured."""


class RegistrationFailed(RelayError):
    """Upstream registration errored or returned an empty delivery key."""


class TransportFailure(RelayError):
    """Upstream call failed at the HTTP level or returned an unreadable body."""


class EntropyFailure(RelayError):
    """The system random source could not produce secret material."""


class IOFailure(RelayError):
    """Storage backend error."""


class NoTargetsResolved(RelayError):
    """A broadcast resolved zero deliverable devices.

    ``results`` holds the per-key lookup failures gathered while resolving.
    """

    def __init__(self, message: str = "no target devices resolved", results: Optional[List] = None):
        super().__init__(message)
        self.results = list(results or [])
