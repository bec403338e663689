"""Client for the serverless functions that deliver push and email.

Delivery is best effort: every failure is logged and reported as ``False``,
never raised, so a broken mail or push provider cannot break the workflow
that triggered it.
"""

import logging
from typing import Any, Dict, Optional

import requests

from config import FUNCTION_TIMEOUT_SECONDS, FUNCTIONS_KEY, FUNCTIONS_URL

logger = logging.getLogger(__name__)


class FunctionClient:
    """Invokes named functions by POSTing JSON to ``{base_url}/{name}``."""

    def __init__(
        self,
        base_url: Optional[str] = FUNCTIONS_URL,
        api_key: Optional[str] = FUNCTIONS_KEY,
        timeout: float = FUNCTION_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return self.base_url is not None

    def invoke(self, name: str, payload: Dict[str, Any]) -> bool:
        """Call a function.

        Args:
            name: Function name, e.g. "send-push".
            payload: JSON body.

        Returns:
            True if the function answered with a 2xx status.
        """
        if not self.enabled:
            logger.debug("Functions URL not configured, skipping %s", name)
            return False

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            response = self._session.post(
                f"{self.base_url}/{name}",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            logger.warning("Function %s failed: %s", name, exc)
            return False
        if not response.ok:
            logger.warning("Function %s returned HTTP %s", name, response.status_code)
            return False
        return True
