from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

import requests

from .http_client import HttpClient
from .models import CandidateRecord

LOG = logging.getLogger(__name__)


class DeliveryError(RuntimeError):
    """Raised when the downstream API cannot be reached at all."""


class DeliverySink(Protocol):
    def post(self, records: Sequence[CandidateRecord]) -> bool: ...


def build_post_url(ip: str, port: str | int | None, path: str) -> str:
    """http://ip:port/path when a port is given, otherwise https://ip/path."""
    path = (path or "").strip().strip("/")
    if port not in (None, ""):
        return f"http://{ip}:{port}/{path}"
    return f"https://{ip}/{path}"


class RestApiSink:
    """
    POST batches as {"<request_param>": [record, ...]}.

    HTTP 200 is success; other statuses are logged and reported as False.
    Transport failures raise DeliveryError and are never retried here.
    """

    def __init__(self, post_url: str, request_param: str, client: HttpClient | None = None) -> None:
        self.post_url = post_url
        self.request_param = request_param
        self._client = client or HttpClient(timeout=30.0)

    def build_body(self, records: Sequence[CandidateRecord]) -> dict:
        return {self.request_param: [r.to_payload() for r in records]}

    def post(self, records: Sequence[CandidateRecord]) -> bool:
        body = self.build_body(records)
        try:
            resp = self._client.post_json(self.post_url, body)
        except requests.RequestException as e:
            raise DeliveryError(f"POST {self.post_url} failed: {e!r}") from e

        if resp.status_code == 200:
            LOG.info("Successfully posted %d job posts!", len(records))
            return True

        LOG.error(
            "Posting %d job posts returned status code %d, message: %s",
            len(records),
            resp.status_code,
            resp.text[:500],
        )
        return False


class DisabledSink:
    """Delivery switched off: nothing is sent, so nothing gets marked seen."""

    def post(self, records: Sequence[CandidateRecord]) -> bool:
        LOG.info("Delivery disabled; dropping batch of %d job posts", len(records))
        return False
