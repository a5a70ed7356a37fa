import logging
from email.message import EmailMessage
from typing import Optional, Union
from urllib.parse import quote

import requests

from ..graph.auth import Credential, GraphTokenProvider, TokenCache
from ..mime.encoder import encode_message, request_body
from ..mime.models import Envelope, Message, SentMessage
from .events import (
    EventDispatcher,
    FailedMessageEvent,
    MessageEvent,
    SentMessageEvent,
    dispatch,
)
from .exceptions import (
    GraphApiRejectedError,
    GraphApiUnreachableError,
    TransportError,
)


class GraphApiTransport:
    """Sends fully assembled MIME messages through Graph's sendMail endpoint.

    The message is uploaded base64-encoded as the request body, which tells
    Graph to send it as-is. The sending mailbox is the envelope sender and
    the app registration needs the Mail.Send application permission.

    Each call makes a single attempt. Retrying is left to the caller.
    """

    BASE_URL = "https://graph.microsoft.com/v1.0"
    SUCCESS_STATUS = 202

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        session: Optional[requests.Session] = None,
        dispatcher: Optional[EventDispatcher] = None,
        logger: Optional[logging.Logger] = None,
        token_cache: Optional[TokenCache] = None,
        token_provider=None,
        timeout: float = 30,
    ):
        self._credential = Credential(tenant_id, client_id, client_secret)
        self._session = session if session is not None else requests.Session()
        self._dispatcher = dispatcher
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._timeout = timeout
        if token_provider is None:
            token_provider = GraphTokenProvider(
                self._credential,
                session=self._session,
                cache=token_cache,
                timeout=timeout,
            )
        self._token_provider = token_provider

    def __str__(self) -> str:
        return (
            f"microsoft-graph-api://{self._credential.client_id}:{{SECRET}}"
            f"@{self._credential.tenant_id}"
        )

    def __repr__(self) -> str:
        return f"<GraphApiTransport {self}>"

    @property
    def credential(self) -> Credential:
        return self._credential

    def send(
        self,
        message: Union[Message, EmailMessage],
        envelope: Optional[Envelope] = None,
    ) -> SentMessage:
        if isinstance(message, EmailMessage):
            message = Message(message)
        if envelope is None:
            envelope = Envelope.create(message)

        event = dispatch(
            self._dispatcher, MessageEvent(message, envelope, str(self))
        )
        envelope = event.envelope

        sent_message = SentMessage(
            original_message=message,
            envelope=envelope,
            message_id=getattr(message, "message_id", None),
        )
        subject = getattr(message, "subject", "")
        try:
            sent_message.response = self._do_send_api(sent_message, message, envelope)
        except TransportError as e:
            self._logger.error(f"Sending '{subject}' via {self} failed: {e}")
            dispatch(self._dispatcher, FailedMessageEvent(message, e))
            raise

        self._logger.info(
            f"Sent '{subject}' as {envelope.sender.address} "
            f"to {len(envelope.recipients)} recipient(s)"
        )
        dispatch(self._dispatcher, SentMessageEvent(sent_message))
        return sent_message

    def _do_send_api(
        self, sent_message: SentMessage, message: Message, envelope: Envelope
    ) -> requests.Response:
        url = self._get_endpoint(sent_message)
        body = encode_message(message)
        try:
            token = self._token_provider.get_access_token()
            try:
                resp = self._session.post(
                    url,
                    data=request_body(body),
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "text/plain",
                    },
                    timeout=self._timeout,
                )
            except requests.RequestException as e:
                raise GraphApiUnreachableError(
                    "Could not reach Microsoft Graph API."
                ) from e
        finally:
            body.close()

        if resp.status_code != self.SUCCESS_STATUS:
            self._logger.warning(
                f"Graph rejected sendMail with HTTP {resp.status_code}: {resp.text}"
            )
            raise GraphApiRejectedError(
                f"Unable to send e-mail using Graph API (HTTP {resp.status_code}).",
                resp,
            )
        return resp

    def _get_endpoint(self, sent_message: SentMessage) -> str:
        sender = quote(sent_message.envelope.sender.address, safe="@")
        return f"{self.BASE_URL}/users/{sender}/sendMail"
