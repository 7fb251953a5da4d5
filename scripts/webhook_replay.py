"""
Replay a sample Infobip WhatsApp inbound payload against the inbound endpoint.

Useful for exercising onboarding and button replies without sending real
WhatsApp messages.

Usage:
    python scripts/webhook_replay.py [--text "Hello"] [--answer ANSWER_ID] [--from PHONE_NUMBER]
"""

import argparse
import json
import sys
import uuid

import httpx


def create_text_event(sender: str, to: str, text: str, message_id: str | None = None) -> dict:
    """One inbound TEXT event as Infobip delivers it."""
    return {
        "from": sender,
        "to": to,
        "integrationType": "WHATSAPP",
        "receivedAt": "2026-10-19T10:00:00.000+0000",
        "messageId": message_id or f"replay-{uuid.uuid4()}",
        "message": {"type": "TEXT", "text": text},
    }


def create_button_reply_event(
    sender: str, to: str, answer_id: int, title: str = "", message_id: str | None = None
) -> dict:
    """One inbound INTERACTIVE_BUTTON_REPLY event; the button id is the answer id."""
    return {
        "from": sender,
        "to": to,
        "integrationType": "WHATSAPP",
        "receivedAt": "2026-10-19T10:00:00.000+0000",
        "messageId": message_id or f"replay-{uuid.uuid4()}",
        "message": {"type": "INTERACTIVE_BUTTON_REPLY", "id": str(answer_id), "title": title},
    }


def send_batch(events: list[dict], base_url: str = "http://localhost:8000") -> bool:
    """POST {"results": [...]} to /message/inbound and print the per-event outcomes."""
    url = f"{base_url}/message/inbound"
    payload = {"results": events, "messageCount": len(events), "pendingMessageCount": 0}

    print(f"Sending {len(events)} event(s) to: {url}")
    print(f"   Payload: {json.dumps(payload, indent=2)}")
    print()

    try:
        with httpx.Client(timeout=10.0) as client:
            response = client.post(url, json=payload)
    except httpx.HTTPError as e:
        print(f"Error sending webhook: {e}")
        return False

    print(f"Status: {response.status_code}")
    if response.status_code != 200:
        print(f"Body: {response.text}")
        return False

    result = response.json()
    for event in result.get("events", []):
        print(
            f"   {event['message_id']}: states={event['states']} user_id={event['user_id']} "
            f"duplicate={event['duplicate']} error={event['error']}"
        )
    if result.get("error"):
        print(f"First error: {result['error']}")
    return True


def main():
    """CLI entrypoint."""
    parser = argparse.ArgumentParser(description="Replay Infobip WhatsApp inbound payload")
    parser.add_argument("--text", type=str, default="Hello", help="Text message content")
    parser.add_argument(
        "--answer",
        type=int,
        default=None,
        help="Send a button reply for this answer id instead of a text",
    )
    parser.add_argument(
        "--from",
        dest="sender",
        type=str,
        default="447700900123",
        help="Sender WhatsApp number (with country code, no +)",
    )
    parser.add_argument(
        "--to",
        type=str,
        default="447860099299",
        help="Business sender number that received the message",
    )
    parser.add_argument("--message-id", type=str, default=None, help="Reuse to test dedupe")
    parser.add_argument("--url", type=str, default="http://localhost:8000")

    args = parser.parse_args()

    if args.answer is not None:
        event = create_button_reply_event(
            args.sender, args.to, args.answer, message_id=args.message_id
        )
    else:
        event = create_text_event(args.sender, args.to, args.text, message_id=args.message_id)

    if not send_batch([event], base_url=args.url):
        print("Ensure the API is running and the database is migrated (alembic upgrade head)")
        sys.exit(1)


if __name__ == "__main__":
    main()
