import logging
import re
import uuid
from collections import namedtuple
from django.conf import settings
from django.utils.module_loading import import_string
import requests

logger = logging.getLogger(__name__)

GatewayResult = namedtuple('GatewayResult', ['success', 'reference', 'reason'])


class GatewayUnavailable(Exception):
    """The gateway could not be reached or is not configured."""


def get_gateway():
    """Instantiate the gateway named by the PAYMENT_GATEWAY setting."""
    return import_string(settings.PAYMENT_GATEWAY)()


class ChapaGateway:
    """
    Chapa payment gateway.

    ``charge`` initializes a transaction and immediately verifies it. Any
    answer other than a verified success is reported as a failure so the
    payment falls back to manual review.
    """

    def __init__(self, secret_key=None, base_url=None, timeout=None):
        self.secret_key = (secret_key if secret_key is not None else settings.CHAPA_SECRET_KEY).strip()
        self.base_url = (base_url or settings.CHAPA_BASE_URL).rstrip('/')
        self.timeout = timeout or settings.CHAPA_TIMEOUT

    def charge(self, amount, currency, payer, payee):
        if not self.secret_key or not self.base_url:
            raise GatewayUnavailable("Chapa credentials are not configured")

        tx_ref = f"job-payment-{payer.pk}-{payee.pk}-{uuid.uuid4().hex[:6]}"
        payload = {
            'amount': str(amount),
            'currency': currency,
            'email': payer.email or '',
            'first_name': payer.first_name or '',
            'last_name': payer.last_name or '',
            'phone_number': payer.phone_number or '',
            'tx_ref': tx_ref,
            'customization': {
                'title': 'Job Payment'[:16],
                'description': re.sub(r'[^a-zA-Z0-9\-_\s.]', '', f"Payment to {payee.username}")[:100],
            },
        }
        logger.info(f"Sending Chapa charge {tx_ref} for {amount} {currency}")
        data = self._request('post', '/transaction/initialize', json=payload)
        if data.get('status') != 'success':
            logger.error(f"Chapa initialization failed: {data}")
            return GatewayResult(False, tx_ref, str(data.get('message') or 'Initialization failed'))

        verification = self.verify(tx_ref)
        details = verification.get('data')
        if not isinstance(details, dict):
            details = {}
        verified = details.get('status')
        if verification.get('status') == 'success' and verified == 'success':
            return GatewayResult(True, details.get('reference') or tx_ref, '')
        reason = verification.get('message') or f"Transaction {verified or 'unverified'}"
        return GatewayResult(False, tx_ref, str(reason))

    def verify(self, tx_ref):
        return self._request('get', f'/transaction/verify/{tx_ref}')

    def _request(self, method, path, **kwargs):
        headers = {
            'Authorization': f'Bearer {self.secret_key}',
            'Content-Type': 'application/json'
        }
        try:
            response = requests.request(
                method, f"{self.base_url}{path}", headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Chapa request failed: {str(e)}")
            raise GatewayUnavailable(str(e))
        if response.status_code >= 500:
            logger.error(f"Chapa server error {response.status_code}: {response.text}")
            raise GatewayUnavailable(f"Chapa returned {response.status_code}")
        try:
            body = response.json()
        except ValueError:
            logger.error(f"Chapa returned a non-JSON response: {response.text}")
            raise GatewayUnavailable("Malformed gateway response")
        if not isinstance(body, dict):
            logger.error(f"Chapa returned an unexpected response: {response.text}")
            raise GatewayUnavailable("Malformed gateway response")
        return body
