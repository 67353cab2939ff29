"""Move an order from processing to completed, capturing its held charge."""

import argparse
import json

import httpx


def main() -> None:
    """CLI entrypoint for manual deferred captures."""

    parser = argparse.ArgumentParser(description="Complete an order and capture its authorized charge.")
    parser.add_argument("--gateway-url", default="http://localhost:8000")
    parser.add_argument("--api-key", required=True)
    parser.add_argument("--order-id", type=int, required=True)
    parser.add_argument("--amount", type=int, default=None, help="Capture amount in minor units")
    args = parser.parse_args()

    body = {"status": "completed"}
    if args.amount is not None:
        body["amount"] = args.amount
    resp = httpx.post(
        f"{args.gateway_url}/orders/{args.order_id}/status",
        headers={"x-api-key": args.api_key},
        json=body,
        timeout=90.0,
    )
    resp.raise_for_status()
    payload = resp.json()
    print(json.dumps(payload, indent=2))
    if payload.get("capture") == "error":
        raise SystemExit(1)


if __name__ == "__main__":
    main()
