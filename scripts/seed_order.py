"""Register a demo order with the gateway for manual checkout testing."""

import argparse
import json
import random

import httpx


def main() -> None:
    """Parse CLI args and create one pending order."""

    parser = argparse.ArgumentParser(description="Create a pending order through the internal API.")
    parser.add_argument("--gateway-url", default="http://localhost:8000")
    parser.add_argument("--api-key", required=True)
    parser.add_argument("--order-id", type=int, default=None)
    parser.add_argument("--total", default="19.99")
    parser.add_argument("--currency", default="USD")
    parser.add_argument("--email", default="guest@example.com")
    parser.add_argument("--user-id", type=int, default=None)
    args = parser.parse_args()

    body = {
        "order_id": args.order_id or random.randint(1000, 999_999),
        "user_id": args.user_id,
        "total": args.total,
        "currency": args.currency,
        "billing_first_name": "Demo",
        "billing_last_name": "Shopper",
        "billing_email": args.email,
    }
    resp = httpx.post(
        f"{args.gateway_url}/internal/orders",
        headers={"x-api-key": args.api_key},
        json=body,
        timeout=10.0,
    )
    resp.raise_for_status()
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
