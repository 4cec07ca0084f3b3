# errors.py
from typing import Any, Dict, Optional


class BloodLinkError(Exception):
    """
    Base for application errors. Carries a machine-readable code and optional
    context for logging.
    """
    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class FetchError(BloodLinkError):
    """Blood bank list unreachable or answered with a non-success status."""
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("FETCH_ERROR", message, details)


class SubmissionError(BloodLinkError):
    """A single request could not be delivered."""
    def __init__(self, bank_id: str, message: str, details: Optional[dict] = None):
        super().__init__("SUBMISSION_ERROR", message, {"bank_id": bank_id, **(details or {})})
        self.bank_id = bank_id


class ParseError(BloodLinkError):
    def __init__(self, source: str, message: str):
        super().__init__("PARSE_ERROR", message, {"source": source})


class ConfigError(BloodLinkError, ValueError):
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("CONFIG_ERROR", message, details)
