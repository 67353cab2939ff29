"""Blocking Stripe REST client used by the checkout flow.

Each call is one HTTPS request with basic auth (secret key as username, empty
password) and a form-encoded body. There are no retries: any transport
failure, non-2xx status, or processor `error` object raises `ProcessorError`
with a message that can be shown to the shopper as-is.
"""

from time import perf_counter
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from stripegate.common.config import GatewaySettings
from stripegate.common.errors import ProcessorError
from stripegate.common.logging import logger
from stripegate.common.metrics import processor_latency_seconds, processor_requests_total
from stripegate.services.processor.schemas import Card, Charge, ChargeRequest, Customer


class StripeClient:
    """Thin wrapper over the processor's customer/card/charge endpoints."""

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.stripe.com/",
        timeout: float = 70.0,
        transport: httpx.BaseTransport | None = None,
        service_name: str = "checkout-gateway",
    ) -> None:
        self.service_name = service_name
        self._client = httpx.Client(
            base_url=base_url,
            auth=(secret_key, ""),
            timeout=timeout,
            headers={"User-Agent": "stripegate"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> "StripeClient":
        """Build a client for the active (test or live) secret key."""

        return cls(
            settings.secret_key,
            base_url=settings.processor_api_url,
            timeout=settings.processor_timeout_seconds,
            service_name=settings.service_name,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "StripeClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, operation: str, method: str, path: str, data: dict[str, str] | None = None) -> dict:
        start = perf_counter()
        outcome = "error"
        try:
            try:
                resp = self._client.request(method, path, data=data)
            except httpx.HTTPError as exc:
                logger.warning("processor transport error operation=%s error=%s", operation, exc)
                raise ProcessorError("There was a problem connecting to the payment gateway.") from exc
            body = self._parse(resp)
            outcome = "ok"
            return body
        finally:
            processor_requests_total.labels(
                service=self.service_name,
                operation=operation,
                outcome=outcome,
            ).inc()
            processor_latency_seconds.labels(service=self.service_name, operation=operation).observe(
                max(0.0, perf_counter() - start)
            )

    @staticmethod
    def _parse(resp: httpx.Response) -> dict:
        """Turn one processor response into a JSON object or raise."""

        if not resp.content:
            raise ProcessorError("Empty response.", status_code=resp.status_code)
        try:
            body = resp.json()
        except ValueError as exc:
            raise ProcessorError("Invalid response.", status_code=resp.status_code) from exc
        if not isinstance(body, dict):
            raise ProcessorError("Invalid response.", status_code=resp.status_code)

        error = body.get("error")
        if error:
            if isinstance(error, dict):
                message = error.get("message") or "Invalid response."
                code = error.get("code")
            else:
                message, code = str(error), None
            logger.info("processor error status=%s code=%s message=%s", resp.status_code, code, message)
            raise ProcessorError(message, code=code, status_code=resp.status_code)
        if resp.status_code >= 400:
            raise ProcessorError(
                f"Payment gateway returned status {resp.status_code}.",
                status_code=resp.status_code,
            )
        if not body.get("id"):
            raise ProcessorError("Invalid response.", status_code=resp.status_code)
        return body

    @staticmethod
    def _load(model: type[BaseModel], body: dict) -> Any:
        try:
            return model.model_validate(body)
        except ValidationError as exc:
            raise ProcessorError("Invalid response.") from exc

    def create_customer(
        self,
        user_id: int,
        token: str,
        description: str,
        email: str | None = None,
    ) -> Customer:
        """Create a processor customer with `token` as its first card."""

        data = {"card": token, "description": description, "metadata[user_id]": str(user_id)}
        if email:
            data["email"] = email
        body = self._request("create_customer", "POST", "/v1/customers", data)
        return self._load(Customer, body)

    def get_customer(self, customer_id: str) -> Customer:
        body = self._request("get_customer", "GET", f"/v1/customers/{customer_id}")
        return self._load(Customer, body)

    def update_customer(self, customer_id: str, changes: dict[str, str]) -> Customer:
        body = self._request("update_customer", "POST", f"/v1/customers/{customer_id}", changes)
        return self._load(Customer, body)

    def add_card(self, customer_id: str, token: str) -> Card:
        """Attach a new tokenized card to an existing customer."""

        body = self._request("add_card", "POST", f"/v1/customers/{customer_id}/cards", {"card": token})
        return self._load(Card, body)

    def create_charge(self, request: ChargeRequest) -> Charge:
        body = self._request("create_charge", "POST", "/v1/charges", request.to_form())
        return self._load(Charge, body)

    def capture_charge(self, charge_id: str, amount: int | None = None) -> Charge:
        """Capture a previously authorized charge, optionally for less."""

        data = {"amount": str(amount)} if amount is not None else {}
        body = self._request("capture_charge", "POST", f"/v1/charges/{charge_id}/capture", data)
        return self._load(Charge, body)
