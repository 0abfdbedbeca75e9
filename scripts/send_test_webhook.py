"""
Send a signed sample webhook to a running instance.

Usage:
    python scripts/send_test_webhook.py --provider movies --secret whsec_dev
    python scripts/send_test_webhook.py --provider stripe --secret whsec_dev --event-type customer.updated
    python scripts/send_test_webhook.py --provider movies --secret wrong   # expect 400
"""
import argparse
import asyncio
import json
import logging
import time
import uuid

import httpx

from inbound_webhooks.utils.webhook_signatures import (
    SIGNATURE_HEADER,
    SIGNATURE_PREFIX,
    STRIPE_SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    compute_hmac_sha256,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_URL = "http://localhost:8000"


def build_movie_request(secret: str, title: str) -> tuple[bytes, dict]:
    body = json.dumps({"title": title}).encode("utf-8")
    timestamp = str(int(time.time()))
    headers = {
        "Content-Type": "application/json",
        TIMESTAMP_HEADER: timestamp,
        SIGNATURE_HEADER: SIGNATURE_PREFIX + compute_hmac_sha256(secret, timestamp, body),
    }
    return body, headers


def build_stripe_request(secret: str, event_type: str) -> tuple[bytes, dict]:
    event = {
        "id": f"evt_{uuid.uuid4().hex[:24]}",
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "livemode": False,
        "data": {"object": {"id": "cus_test_123", "object": "customer", "email": "jenny@example.com"}},
    }
    body = json.dumps(event).encode("utf-8")
    timestamp = str(int(time.time()))
    signature = compute_hmac_sha256(secret, timestamp, body)
    headers = {
        "Content-Type": "application/json",
        STRIPE_SIGNATURE_HEADER: f"t={timestamp},v1={signature}",
    }
    return body, headers


async def send(provider: str, body: bytes, headers: dict, base_url: str) -> httpx.Response:
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(f"{base_url}/webhooks/{provider}", content=body, headers=headers)
        logger.info(
            "%s webhook response: %s (correlation_id=%s)",
            provider, resp.status_code, resp.headers.get("x-correlation-id"),
        )
        return resp


async def main():
    parser = argparse.ArgumentParser(description="Send a signed sample webhook")
    parser.add_argument("--provider", default="movies", choices=["movies", "stripe"])
    parser.add_argument("--secret", required=True)
    parser.add_argument("--title", default="Dungeons & Dragons: Honor Among Thieves")
    parser.add_argument("--event-type", default="customer.updated")
    parser.add_argument("--base-url", default=BASE_URL)
    args = parser.parse_args()

    if args.provider == "movies":
        body, headers = build_movie_request(args.secret, args.title)
    else:
        body, headers = build_stripe_request(args.secret, args.event_type)

    await send(args.provider, body, headers, args.base_url)


if __name__ == "__main__":
    asyncio.run(main())
