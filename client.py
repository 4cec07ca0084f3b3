# client.py
from typing import List, Optional

import requests
import structlog

from errors import FetchError, SubmissionError
from settings import get_settings

logger = structlog.get_logger(__name__)


def fetch_blood_banks(base_url: Optional[str] = None, session=None,
                      timeout: Optional[float] = None) -> List[dict]:
    """
    GET /api/bloodbanks. Raises FetchError on transport failure or timeout, a
    non-success status or an unreadable body.
    """
    settings = get_settings()
    url = f"{(base_url or settings.api_base_url).rstrip('/')}/api/bloodbanks"
    http = session or requests
    try:
        response = http.get(url, timeout=timeout or settings.fetch_timeout_seconds)
    except requests.exceptions.RequestException as e:
        logger.warning("bloodbanks_fetch_failed", url=url, error=str(e))
        raise FetchError(str(e), details={"url": url}) from e

    if not response.ok:
        logger.warning("bloodbanks_fetch_failed", url=url, status_code=response.status_code)
        raise FetchError(f"HTTP {response.status_code}: {response.reason}",
                         details={"url": url, "status_code": response.status_code})

    try:
        data = response.json()
    except ValueError as e:
        raise FetchError("Invalid JSON from blood bank API", details={"url": url}) from e

    if not isinstance(data, dict):
        raise FetchError("Unexpected response shape from blood bank API", details={"url": url})
    banks = data.get("bloodbanks") or []
    if not isinstance(banks, list):
        raise FetchError("bloodbanks is not a list", details={"url": url})
    logger.info("bloodbanks_fetched", count=len(banks))
    return banks


def submit_request(payload: dict, base_url: Optional[str] = None, session=None) -> str:
    """
    POST one blood request and return the acknowledgment's status field.
    No timeout is applied; the call waits for the transport to settle.
    """
    url = f"{(base_url or get_settings().api_base_url).rstrip('/')}/api/bloodbanks/request"
    bank_id = str(payload.get("bank_id"))
    http = session or requests
    try:
        response = http.post(url, json=payload)
        response.raise_for_status()
        result = response.json()
    except requests.exceptions.RequestException as e:
        raise SubmissionError(bank_id, f"Failed to send request: {e}") from e
    except ValueError as e:
        raise SubmissionError(bank_id, "Invalid JSON acknowledgment") from e

    if not isinstance(result, dict):
        raise SubmissionError(bank_id, "Unexpected acknowledgment shape")
    return str(result.get("status", ""))
