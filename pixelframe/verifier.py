import base64
import binascii
import logging

import requests

DEFAULT_HUB_URL = "https://nemes.farcaster.xyz:2281"

logger = logging.getLogger(__name__)


class HubVerifier:
    """Checks frame action signatures with a Farcaster hub's HTTP API."""

    def __init__(self, hub_url: str = DEFAULT_HUB_URL, timeout: float = 5.0, session=None):
        self.endpoint = hub_url.rstrip("/") + "/v1/validateMessage"
        self.timeout = timeout
        self.session = session or requests.Session()

    def __call__(self, trusted_data, untrusted_data) -> bool:
        try:
            message = base64.b64decode(trusted_data["messageBytes"], validate=True)
            resp = self.session.post(
                self.endpoint,
                data=message,
                headers={"Content-Type": "application/octet-stream"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return resp.json().get("valid") is True
        except (requests.RequestException, ValueError, binascii.Error,
                KeyError, TypeError, AttributeError) as e:
            logger.error("Error verifying Farcaster message: %s", e)
            return False


def skip_verification(trusted_data, untrusted_data) -> bool:
    """Accept every frame action. Local development only."""
    return True
