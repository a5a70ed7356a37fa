"""CLI for sending a single message through Microsoft Graph.

Requires .env file with Azure credentials (or MAILER_DSN).
"""

import argparse
import logging
import sys
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

from graph_mailer.config import Config
from graph_mailer.graph.auth import MsalTokenProvider
from graph_mailer.transport.exceptions import TransportError


def build_message(args) -> EmailMessage:
    if args.eml:
        with open(args.eml, "rb") as f:
            return BytesParser(policy=policy.default).parse(f)

    msg = EmailMessage()
    msg["From"] = args.sender
    msg["To"] = ", ".join(args.to)
    msg["Subject"] = args.subject
    msg.set_content(args.body)
    return msg


def main():
    parser = argparse.ArgumentParser(
        description="Send an e-mail through the Microsoft Graph sendMail API"
    )
    parser.add_argument(
        "--eml", type=Path,
        help="Path to a complete .eml message to send as-is",
    )
    parser.add_argument("--from", dest="sender", help="Sender mailbox (UPN)")
    parser.add_argument("--to", nargs="*", default=[], help="Recipient addresses")
    parser.add_argument("--subject", default="Test message")
    parser.add_argument("--body", default="Sent via Microsoft Graph.")
    parser.add_argument(
        "--msal", action="store_true",
        help="Acquire tokens through MSAL instead of the plain token endpoint",
    )
    parser.add_argument(
        "--env-file", type=Path, default=Path(".env"),
        help="Path to .env file (default: .env)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )

    if not args.eml and not (args.sender and args.to):
        parser.error("either --eml or both --from and --to are required")

    load_dotenv(args.env_file)
    config = Config.from_env()

    missing = config.validate()
    if missing:
        print(f"ERROR: Missing or invalid {', '.join(missing)}. Check your .env file.")
        sys.exit(1)

    kwargs = {}
    if args.msal:
        kwargs["token_provider"] = MsalTokenProvider(config.credential())
    transport = config.build_transport(**kwargs)

    message = build_message(args)
    try:
        sent = transport.send(message)
    except TransportError as e:
        print(f"FAIL  {transport}: {e}")
        if e.debug:
            print(f"      {e.debug}")
        sys.exit(1)

    print(f"OK    {transport}")
    print(f"      from {sent.sender} to {len(sent.envelope.recipients)} recipient(s)")


if __name__ == "__main__":
    main()
