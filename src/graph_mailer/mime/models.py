import copy
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.policy import SMTP
from email.utils import formatdate, getaddresses, make_msgid, parseaddr
from typing import Iterator, List, Optional

import requests

from ..transport.exceptions import InvalidEnvelopeError

CHUNK_SIZE = 8192


@dataclass(frozen=True)
class Address:
    address: str
    name: str = ""

    @classmethod
    def parse(cls, value: str) -> "Address":
        name, address = parseaddr(value)
        if not address or "@" not in address:
            raise InvalidEnvelopeError(f"Invalid e-mail address: {value!r}")
        return cls(address=address, name=name)

    def __str__(self) -> str:
        return f"{self.name} <{self.address}>" if self.name else self.address


@dataclass
class Envelope:
    """Who the message is sent as and who receives it, independent of headers."""

    sender: Address
    recipients: List[Address]

    def __post_init__(self):
        if not self.recipients:
            raise InvalidEnvelopeError("An envelope must have at least one recipient.")

    @classmethod
    def create(cls, message: "Message") -> "Envelope":
        headers = getattr(message, "email", None)
        if headers is None:
            raise InvalidEnvelopeError(
                "An envelope is required for messages without headers."
            )
        sender_header = headers.get("Sender") or headers.get("From")
        if not sender_header:
            raise InvalidEnvelopeError(
                "Unable to determine the envelope sender of the message."
            )
        # From may carry several mailboxes; the first one sends
        name, addr = getaddresses([str(sender_header)])[0]
        sender = Address(address=Address.parse(addr).address, name=name)

        values = []
        for header in ("To", "Cc", "Bcc"):
            values.extend(str(v) for v in headers.get_all(header, []))
        recipients = [
            Address(address=addr, name=display)
            for display, addr in getaddresses(values)
            if addr
        ]
        return cls(sender=sender, recipients=recipients)


class Message:
    """A fully assembled email, serialised lazily as MIME bytes."""

    def __init__(self, email: EmailMessage, chunk_size: int = CHUNK_SIZE):
        self.email = self._prepare(email)
        self._chunk_size = chunk_size

    @staticmethod
    def _prepare(email: EmailMessage) -> EmailMessage:
        """Copy of the message with Date and Message-ID filled in when missing."""
        if "Date" in email and "Message-ID" in email:
            return email
        email = copy.deepcopy(email)
        if "Date" not in email:
            email["Date"] = formatdate(localtime=True)
        if "Message-ID" not in email:
            _, sender = parseaddr(str(email.get("Sender") or email.get("From") or ""))
            domain = sender.rpartition("@")[2] or None
            email["Message-ID"] = make_msgid(domain=domain)
        return email

    def to_iterable(self) -> Iterator[bytes]:
        data = self.email.as_bytes(policy=SMTP)
        for start in range(0, len(data), self._chunk_size):
            yield data[start:start + self._chunk_size]

    def to_string(self) -> bytes:
        return b"".join(self.to_iterable())

    @property
    def subject(self) -> str:
        return str(self.email.get("Subject", ""))

    @property
    def message_id(self) -> Optional[str]:
        value = self.email.get("Message-ID")
        return str(value) if value else None


@dataclass
class SentMessage:
    """A message accepted by Graph, along with the envelope it went out with."""

    original_message: Message
    envelope: Envelope
    message_id: Optional[str] = None
    response: Optional[requests.Response] = field(default=None, repr=False)

    @property
    def sender(self) -> str:
        return self.envelope.sender.address
