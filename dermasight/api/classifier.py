"""
Autoderm Classifier Client
==========================
Sends a base64-encoded skin image to the Autoderm dermatology
classification API and returns its ranked prediction payload.

The caller is responsible for size limits; this client only moves bytes.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from dermasight.app import config
from dermasight.app.errors import ConfigurationError, ServiceUnavailable, UpstreamError

logger = logging.getLogger(__name__)

# Statuses that mean "try later" rather than "your request was wrong"
_UNAVAILABLE_STATUSES = {502, 503, 504}

# One extra attempt on connection errors / timeouts; HTTP errors are final
_NETWORK_RETRIES = 1


class AutodermClient:
    """Thin wrapper around ``POST /v1/query``."""

    def __init__(
        self,
        api_key: str,
        api_url: str = config.AUTODERM_API_URL,
        model: str = config.AUTODERM_MODEL,
        language: str = config.AUTODERM_LANGUAGE,
        timeout: float = config.AUTODERM_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ConfigurationError(f"{config.API_KEY_ENV} not configured")
        self._api_key = api_key
        self.api_url = api_url
        self.model = model
        self.language = language
        self.timeout = timeout
        self._http = session or requests.Session()

    @classmethod
    def from_env(cls) -> "AutodermClient":
        """Build a client from the environment (raises if the key is unset)."""
        return cls(api_key=config.get_api_key())

    def classify(self, image_base64: str) -> dict[str, Any]:
        """Run one classification and return the upstream JSON verbatim."""
        headers = {
            "Api-Key": self._api_key,
            "Content-Type": "application/json",
        }
        body = {
            "model": self.model,
            "language": self.language,
            "data": image_base64,
        }

        logger.info("Calling Autoderm API (%s)", self.model)
        response = self._post(headers, body)

        if not response.ok:
            logger.error(
                "Autoderm API error: %s %s", response.status_code, response.text
            )
            message = f"Autoderm API error: {response.status_code}"
            if response.status_code in _UNAVAILABLE_STATUSES:
                raise ServiceUnavailable(message, status_code=response.status_code)
            raise UpstreamError(message, status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            logger.error("Autoderm API returned a non-JSON body: %s", response.text[:200])
            raise UpstreamError("Autoderm API returned an invalid response") from exc

        logger.info("Autoderm API response received")
        return payload

    def _post(self, headers: dict[str, str], body: dict[str, Any]) -> requests.Response:
        attempt = 0
        while True:
            try:
                return self._http.post(
                    self.api_url, json=body, headers=headers, timeout=self.timeout
                )
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
                if attempt >= _NETWORK_RETRIES:
                    logger.error("Autoderm API unreachable: %s", exc)
                    raise ServiceUnavailable("Autoderm API unreachable") from exc
                attempt += 1
                logger.warning("Autoderm API request failed (%s), retrying once", exc)
