from email.message import EmailMessage

import pytest

from graph_mailer.mime.models import Address, Envelope, Message
from graph_mailer.transport.exceptions import InvalidEnvelopeError


class TestAddress:
    def test_parse_with_display_name(self):
        addr = Address.parse("Contoso Billing <billing@contoso.com>")
        assert addr.address == "billing@contoso.com"
        assert addr.name == "Contoso Billing"
        assert str(addr) == "Contoso Billing <billing@contoso.com>"

    def test_parse_rejects_garbage(self):
        with pytest.raises(InvalidEnvelopeError):
            Address.parse("not an address")


class TestEnvelope:
    def test_created_from_headers(self, email_message):
        email_message["Cc"] = "carol@example.com"
        email_message["Bcc"] = "audit@contoso.com"
        envelope = Envelope.create(Message(email_message))

        assert envelope.sender == Address("noreply@contoso.com", "Contoso")
        assert [r.address for r in envelope.recipients] == [
            "alice@example.com",
            "bob@example.com",
            "carol@example.com",
            "audit@contoso.com",
        ]

    def test_sender_header_wins_over_from(self, email_message):
        email_message["Sender"] = "mailer@contoso.com"
        envelope = Envelope.create(Message(email_message))
        assert envelope.sender.address == "mailer@contoso.com"

    def test_first_from_mailbox_is_sender(self, email_message):
        del email_message["From"]
        email_message["From"] = "first@contoso.com, second@contoso.com"
        envelope = Envelope.create(Message(email_message))
        assert envelope.sender.address == "first@contoso.com"

    def test_missing_sender(self):
        msg = EmailMessage()
        msg["To"] = "alice@example.com"
        with pytest.raises(InvalidEnvelopeError, match="sender"):
            Envelope.create(Message(msg))

    def test_missing_recipients(self):
        msg = EmailMessage()
        msg["From"] = "noreply@contoso.com"
        with pytest.raises(InvalidEnvelopeError, match="recipient"):
            Envelope.create(Message(msg))


class TestMessage:
    def test_chunks_cover_whole_message(self, email_message):
        message = Message(email_message, chunk_size=10)
        chunks = list(message.to_iterable())
        assert all(len(c) <= 10 for c in chunks)
        assert b"".join(chunks) == message.to_string()
        assert message.to_string().endswith(b"\r\n")

    def test_iterable_is_lazy(self, email_message):
        it = Message(email_message).to_iterable()
        assert not isinstance(it, (list, bytes))
        assert isinstance(next(it), bytes)

    def test_subject_and_message_id(self, email_message):
        message = Message(email_message)
        assert message.subject == "Your invoice"
        assert message.message_id == "<invoice-42@contoso.com>"


class TestPreparedHeaders:
    def test_adds_date_and_message_id(self):
        msg = EmailMessage()
        msg["From"] = "noreply@contoso.com"
        msg["To"] = "alice@example.com"
        msg.set_content("hi")

        message = Message(msg)

        assert message.message_id.endswith("@contoso.com>")
        assert message.email["Date"]
        assert b"Message-ID: " in message.to_string()
        assert b"Date: " in message.to_string()
        # caller's message left untouched
        assert "Message-ID" not in msg
        assert "Date" not in msg

    def test_keeps_existing_headers(self, email_message):
        message = Message(email_message)
        assert message.email is email_message
        assert message.message_id == "<invoice-42@contoso.com>"
        assert message.email["Date"] == "Mon, 12 Oct 2026 09:30:00 +0000"

    def test_message_id_stable_across_serialisations(self):
        msg = EmailMessage()
        msg["From"] = "noreply@contoso.com"
        msg["To"] = "alice@example.com"
        message = Message(msg)
        assert message.to_string() == message.to_string()
