"""HTTP sender: posts serialized batches to the topic endpoint."""

import logging

import requests

from egpipe.errors import DeliveryError

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/json; charset=utf-8"


class EventSender:
    """Single-attempt POST of request bodies; anything but 200 is an error."""

    def __init__(
        self,
        endpoint: str,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        self._endpoint = endpoint
        self._headers = {
            k: v for k, v in (headers or {}).items() if k.lower() != "content-type"
        }
        self._headers["Content-Type"] = CONTENT_TYPE
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    def send(self, body: bytes) -> int:
        """POST *body* and return the status code.

        Raises DeliveryError on a transport failure or a non-200 response.
        """
        try:
            resp = self._session.post(
                self._endpoint,
                data=body,
                headers=self._headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise DeliveryError(f"POST {self._endpoint} failed: {exc}") from exc

        if resp.status_code != 200:
            detail = resp.text[:200].strip()
            logger.debug("Endpoint replied %d: %s", resp.status_code, detail)
            raise DeliveryError(
                f"POST {self._endpoint} returned {resp.status_code} {resp.reason}"
                + (f": {detail}" if detail else ""),
                status_code=resp.status_code,
            )
        return resp.status_code

    def close(self):
        """Close the underlying HTTP session."""
        self._session.close()
