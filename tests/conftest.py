from email.message import EmailMessage
from unittest.mock import MagicMock

import pytest
import requests

from graph_mailer.graph.auth import Credential, TokenCache

TENANT_ID = "contoso-tenant"
CLIENT_ID = "app-client-id"
CLIENT_SECRET = "s3cr3t-value"

TOKEN_URL = f"https://login.microsoftonline.com/{TENANT_ID}/oauth2/v2.0/token"
SEND_URL = "https://graph.microsoft.com/v1.0/users/noreply@contoso.com/sendMail"


def _make_response(status_code=200, json_body=None, text=""):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.text = text
    if json_body is None:
        resp.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        resp.json.return_value = json_body
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(
            f"{status_code} Error", response=resp
        )
    return resp


@pytest.fixture
def make_response():
    return _make_response


class FakeGraph:
    """Routes session.post calls to canned token and sendMail responses."""

    def __init__(self):
        self.token_response = _make_response(
            200, {"access_token": "token-1", "expires_in": 3599, "token_type": "Bearer"}
        )
        self.send_response = _make_response(202)
        self.send_error = None
        self.payloads = []
        self.session = MagicMock(spec=requests.Session)
        self.session.post.side_effect = self._post

    def _post(self, url, data=None, headers=None, timeout=None):
        if "login.microsoftonline.com" in url:
            return self.token_response
        self.payloads.append(data)
        if self.send_error is not None:
            raise self.send_error
        return self.send_response

    def calls_to(self, fragment):
        return [c for c in self.session.post.call_args_list if fragment in c.args[0]]

    @property
    def token_requests(self):
        return self.calls_to("/oauth2/v2.0/token")

    @property
    def send_requests(self):
        return self.calls_to("/sendMail")


@pytest.fixture
def graph():
    return FakeGraph()


@pytest.fixture
def credential():
    return Credential(TENANT_ID, CLIENT_ID, CLIENT_SECRET)


@pytest.fixture
def token_cache():
    return TokenCache()


@pytest.fixture
def email_message():
    msg = EmailMessage()
    msg["From"] = "Contoso <noreply@contoso.com>"
    msg["To"] = "alice@example.com, Bob <bob@example.com>"
    msg["Subject"] = "Your invoice"
    msg["Message-ID"] = "<invoice-42@contoso.com>"
    msg["Date"] = "Mon, 12 Oct 2026 09:30:00 +0000"
    msg.set_content("Please find your invoice attached.\n")
    return msg


@pytest.fixture
def payload_streams(monkeypatch):
    """Every encoded payload buffer the transport opens."""
    from graph_mailer.mime import encoder

    streams = []

    def tracking(message):
        stream = encoder.encode_message(message)
        streams.append(stream)
        return stream

    monkeypatch.setattr("graph_mailer.transport.graph_api.encode_message", tracking)
    return streams
