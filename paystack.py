"""
Thin Paystack client: transaction initialization, verification and webhook
signature checks. Every outbound call carries a timeout.
"""
import hashlib
import hmac
import logging
from urllib.parse import quote

import requests

from errors import GatewayError, GatewayUnavailable

logger = logging.getLogger(__name__)


def sign_payload(secret, raw_body):
    """Hex HMAC-SHA512 of the raw request body, as Paystack computes it."""
    if isinstance(secret, str):
        secret = secret.encode('utf-8')
    return hmac.new(secret, raw_body, digestmod=hashlib.sha512).hexdigest()


def signature_matches(secret, raw_body, signature):
    if not secret or not signature:
        return False
    computed = sign_payload(secret, raw_body)
    return hmac.compare_digest(computed, signature.strip().lower())


class PaystackClient:
    def __init__(self, secret_key, base_url='https://api.paystack.co', timeout=10.0, session=None):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config, session=None):
        return cls(config.secret_key, config.api_base_url, config.timeout, session=session)

    def _headers(self):
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json"
        }

    def _request(self, method, path, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as exc:
            logger.warning(f"Paystack {method} {path} timed out after {self.timeout}s")
            raise GatewayUnavailable("Payment gateway timed out.") from exc
        except requests.exceptions.RequestException as exc:
            logger.warning(f"Paystack {method} {path} failed: {exc}")
            raise GatewayUnavailable() from exc

        if resp.status_code >= 500:
            logger.warning(f"Paystack {method} {path} answered {resp.status_code}")
            raise GatewayUnavailable()

        try:
            result = resp.json()
        except ValueError as exc:
            logger.error(f"Paystack {method} {path} returned a non-JSON body ({resp.status_code})")
            raise GatewayUnavailable() from exc

        if resp.status_code >= 400 or not result.get('status'):
            err = result.get('message', 'Unknown error')
            logger.error(f"Paystack {method} {path} rejected ({resp.status_code}): {err}")
            raise GatewayError(f"Payment gateway rejected the request: {err}")

        return result.get('data') or {}

    def initialize_transaction(self, email, amount, reference, currency, callback_url=None, metadata=None):
        """
        Starts a hosted checkout and returns the authorization URL to send the payer to.
        `amount` is in minor currency units.
        """
        payload = {
            "email": email,
            "amount": amount,
            "reference": reference,
            "currency": currency,
        }
        if callback_url:
            payload["callback_url"] = callback_url
        if metadata:
            payload["metadata"] = metadata

        data = self._request('POST', '/transaction/initialize', json=payload)
        url = data.get('authorization_url')
        if not url:
            raise GatewayError("Payment gateway did not return an authorization URL.")
        return url

    def verify_transaction(self, reference):
        """Returns Paystack's transaction data (status, amount, reference, metadata)."""
        return self._request('GET', f"/transaction/verify/{quote(reference, safe='')}")
