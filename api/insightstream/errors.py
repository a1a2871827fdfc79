from __future__ import annotations
"""
Exception hierarchy for InsightStream.

Every error carries the HTTP status the API answers with, so routers can let
them propagate to the app-level handler in ``main.py`` instead of building
error responses themselves.
"""


class InsightStreamError(Exception):
    """Parent class for every error this service raises on purpose."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__


class NoDatasetError(InsightStreamError):
    """The operation needs a loaded dataset and the session has none."""

    status_code = 400


class DatasetNotFoundError(InsightStreamError):
    """The dataId is unknown or its entry has expired."""

    status_code = 404


class UploadError(InsightStreamError):
    status_code = 400


class DownstreamError(InsightStreamError):
    """The LLM gateway failed or answered with something unusable."""

    status_code = 502


class ParseError(InsightStreamError):
    """
    Structured JSON was expected in a model reply but not found.  Always
    recovered locally with a default value.
    """

    status_code = 500


class EmptyHistoryError(InsightStreamError):
    status_code = 400


class InvalidRequestError(InsightStreamError):
    """A table edit names a row or column the dataset does not have."""

    status_code = 400
