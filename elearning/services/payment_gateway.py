"""
Payment gateway clients.

Both clients are plain objects constructed once at startup (see main.py) and
handed to routes through `get_payment_gateway` / `get_payment_links`, so tests
can swap in a fake without touching module globals.
"""
import hashlib
import hmac
import logging
import secrets
import httpx
from fastapi import Request

logger = logging.getLogger(__name__)

class PaymentGatewayError(Exception):
    pass

class RazorpayGateway:
    """Orders API + payment signature check for course checkout."""

    def __init__(self, key_id: str, key_secret: str, api_url: str = "https://api.razorpay.com/v1"):
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_url = api_url.rstrip("/")

    async def create_order(self, amount: int, currency: str, receipt: str | None = None) -> dict:
        payload = {"amount": amount, "currency": currency}
        if receipt:
            payload["receipt"] = receipt

        async with httpx.AsyncClient(timeout=15) as client:
            try:
                response = await client.post(
                    f"{self.api_url}/orders",
                    json=payload,
                    auth=(self.key_id, self.key_secret),
                )
            except httpx.HTTPError as e:
                raise PaymentGatewayError(f"Order request failed: {e}") from e

        if response.status_code >= 400:
            raise PaymentGatewayError(f"Order rejected ({response.status_code}): {response.text}")
        return response.json()

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        # Signature is HMAC-SHA256("<order_id>|<payment_id>") keyed with the API secret.
        body = f"{order_id}|{payment_id}".encode()
        expected = hmac.new(self.key_secret.encode(), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature or "")

class PayOSClient:
    """Hosted payment links."""

    def __init__(self, client_id: str, api_key: str, checksum_key: str, api_url: str = "https://api-merchant.payos.vn"):
        self.client_id = client_id
        self.api_key = api_key
        self.checksum_key = checksum_key
        self.api_url = api_url.rstrip("/")

    @staticmethod
    def new_order_code() -> int:
        return 1 + secrets.randbelow(2**31 - 1)

    def sign(self, order: dict) -> str:
        fields = ("amount", "cancelUrl", "description", "orderCode", "returnUrl")
        data = "&".join(f"{key}={order[key]}" for key in fields)
        return hmac.new(self.checksum_key.encode(), data.encode(), hashlib.sha256).hexdigest()

    async def create_payment_link(self, amount: int, description: str, return_url: str, cancel_url: str) -> dict:
        order = {
            "orderCode": self.new_order_code(),
            "amount": amount,
            "description": description,
            "returnUrl": return_url,
            "cancelUrl": cancel_url,
        }
        order["signature"] = self.sign(order)
        headers = {"x-client-id": self.client_id, "x-api-key": self.api_key}

        async with httpx.AsyncClient(timeout=15) as client:
            try:
                response = await client.post(f"{self.api_url}/v2/payment-requests", json=order, headers=headers)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise PaymentGatewayError(f"Payment link request failed: {e}") from e

        body = response.json()
        if body.get("code") != "00" or not body.get("data"):
            raise PaymentGatewayError(f"Payment link rejected: {body.get('desc')}")
        return {"checkoutUrl": body["data"]["checkoutUrl"], "orderCode": order["orderCode"]}

def get_payment_gateway(request: Request) -> RazorpayGateway:
    return request.app.state.payment_gateway

def get_payment_links(request: Request) -> PayOSClient:
    return request.app.state.payment_links
