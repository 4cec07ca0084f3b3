# store.py
import csv
import io
from dataclasses import replace
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

import structlog

from client import fetch_blood_banks
from errors import FetchError, ParseError
from models import Recipient

logger = structlog.get_logger(__name__)


def parse_fallback_csv(text: str, source: str = "<csv>") -> List[Recipient]:
    """
    Parse the static blood bank list. Columns: id, name, phone, city,
    latitude, longitude, distance, blood_types_available. Missing cells get
    default values; blank lines are skipped.
    """
    reader = csv.reader(io.StringIO(text))
    header = next(reader, None)
    if not header or not any(h.strip() for h in header):
        raise ParseError(source, "Fallback data has no header row")

    recipients = []
    for row in reader:
        if not any(v.strip() for v in row):
            continue
        recipients.append(Recipient.from_row(row, len(recipients)))
    return recipients


def ensure_unique_keys(recipients: List[Recipient]) -> List[Recipient]:
    """
    Give every recipient a distinct key. Later duplicates get a positional
    suffix so one status entry never covers two banks.
    """
    seen = set()
    unique = []
    for idx, r in enumerate(recipients):
        key = r.key
        if key in seen:
            key = f"{r.key}_{idx}"
            while key in seen:
                key += "_"
            logger.warning("duplicate_bank_key", key=r.key, replacement=key, name=r.name)
            r = replace(r, key=key)
        seen.add(key)
        unique.append(r)
    return unique


class RecipientStore:
    """
    Holds the blood banks for the session. Populated once by load(); the
    fallback CSV is used when the API cannot be reached.
    """
    def __init__(self, fetch: Callable[[], List[dict]] = fetch_blood_banks,
                 fallback_path: Optional[Union[str, Path]] = None):
        self._fetch = fetch
        self.fallback_path = Path(fallback_path) if fallback_path else None
        self._recipients: List[Recipient] = []
        self.error: str = ""
        self.source: Optional[str] = None

    def load(self) -> List[Recipient]:
        try:
            banks = self._fetch()
        except FetchError as e:
            self.error = f"Backend connection failed: {e.message}"
            logger.warning("using_fallback_bloodbanks", error=e.message, **e.details)
            return self.load_fallback()

        recipients = []
        for idx, item in enumerate(banks):
            if not isinstance(item, dict):
                logger.warning("malformed_bloodbank_skipped", index=idx, item=repr(item))
                continue
            recipients.append(Recipient.from_api(item, idx))
        self._recipients = ensure_unique_keys(recipients)
        self.error = ""
        self.source = "api"
        return self.recipients

    def load_fallback(self) -> List[Recipient]:
        self.source = "fallback"
        self._recipients = []
        if self.fallback_path is None:
            logger.error("fallback_load_failed", error="no fallback path configured")
            return self.recipients
        try:
            text = self.fallback_path.read_text(encoding="utf-8")
            self._recipients = ensure_unique_keys(parse_fallback_csv(text, source=str(self.fallback_path)))
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            logger.error("fallback_load_failed", path=str(self.fallback_path), error=str(e))
        except ParseError as e:
            logger.error("fallback_load_failed", path=str(self.fallback_path), error=e.message)
        else:
            logger.info("fallback_bloodbanks_loaded", count=len(self._recipients))
        return self.recipients

    @property
    def recipients(self) -> List[Recipient]:
        return list(self._recipients)

    def keys(self) -> List[str]:
        return [r.key for r in self._recipients]

    def get(self, key: str) -> Optional[Recipient]:
        for r in self._recipients:
            if r.key == key:
                return r
        return None

    def __iter__(self) -> Iterator[Recipient]:
        return iter(list(self._recipients))

    def __len__(self) -> int:
        return len(self._recipients)
