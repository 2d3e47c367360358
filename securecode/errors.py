"""Exception types raised across the analysis pipeline."""

from __future__ import annotations


class SecureCodeError(Exception):
    """Base error; ``status_code`` is what the HTTP layer reports."""

    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ExtractionError(SecureCodeError):
    status_code = 400


class InvalidRepositoryUrl(SecureCodeError):
    status_code = 400


class RepositoryFetchError(SecureCodeError):
    status_code = 502


class InvalidSubmission(SecureCodeError):
    status_code = 400


class ScanError(SecureCodeError):
    """Raised when a directory cannot be walked; per-file reads only log it."""

    status_code = 500

    def __init__(self, message: str = "", path: str = "") -> None:
        super().__init__(message)
        self.path = path


class NoCodeFilesFound(SecureCodeError):
    status_code = 422

    def __init__(self, message: str = "No code files found in the uploaded archive.") -> None:
        super().__init__(message)


class InferenceParseError(SecureCodeError):
    """The model answered, but not with the expected JSON shape."""

    def __init__(self, message: str = "", raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class InferenceTransportError(SecureCodeError):
    """The model call itself failed (network, auth, quota, timeout)."""

    status_code = 502


class JobNotFound(SecureCodeError):
    status_code = 404

    def __init__(self, message: str = "Analysis not found") -> None:
        super().__init__(message)


class JobAccessDenied(SecureCodeError):
    status_code = 403

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class AuthenticationRequired(SecureCodeError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


__all__ = [
    "AuthenticationRequired",
    "ExtractionError",
    "InferenceParseError",
    "InferenceTransportError",
    "InvalidRepositoryUrl",
    "InvalidSubmission",
    "JobAccessDenied",
    "JobNotFound",
    "NoCodeFilesFound",
    "RepositoryFetchError",
    "ScanError",
    "SecureCodeError",
]
