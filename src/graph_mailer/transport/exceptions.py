from typing import Optional

import requests


class TransportError(Exception):
    """Base class for everything that can go wrong while sending a message."""

    def __init__(self, message: str, response: Optional[requests.Response] = None):
        super().__init__(message)
        self.response = response

    @property
    def debug(self) -> str:
        """Status and body of the attached response, for diagnostics."""
        if self.response is None:
            return ""
        return f"HTTP {self.response.status_code}: {self.response.text}"


class AuthTransportError(TransportError):
    """The token endpoint was unreachable or returned no usable access token."""


class SendTransportError(TransportError):
    """The sendMail call failed."""


class GraphApiUnreachableError(SendTransportError):
    """The sendMail request could not be completed at the transport layer."""


class GraphApiRejectedError(SendTransportError):
    """Graph answered the sendMail request with something other than 202."""


class InvalidEnvelopeError(TransportError):
    """The message has no usable sender or recipients."""


class IncompleteDsnError(ValueError):
    pass


class UnsupportedSchemeError(ValueError):
    pass
