"""
Errors raised by the plain HTTP client.

LaplaceHTTPError carries the status and body of a failed request. Known
provider responses are recognised and attached as ``internal_error`` so
callers can compare against the module-level sentinels.
"""

from __future__ import annotations

from typing import Optional


class LaplaceError(Exception):
    """Provider-level error with a fixed message."""


ERR_YOU_DO_NOT_HAVE_ACCESS_TO_ENDPOINT = LaplaceError("you do not have access to this endpoint")
ERR_LIMIT_EXCEEDED = LaplaceError("limit exceeded")
ERR_ENDPOINT_IS_NOT_ACTIVE = LaplaceError("endpoint is not active")
ERR_INVALID_TOKEN = LaplaceError("invalid token")
ERR_INVALID_ID = LaplaceError("invalid object id")


class LaplaceHTTPError(Exception):
    """Non-2xx response from the provider."""

    def __init__(
        self,
        http_status: int,
        message: str,
        internal_error: Optional[BaseException] = None,
    ) -> None:
        self.http_status = http_status
        self.message = message
        self.internal_error = internal_error
        super().__init__(http_status, message)

    def __str__(self) -> str:
        text = f"{self.http_status}: {self.message}"
        if self.internal_error is not None:
            text += f" ({self.internal_error})"
        return text

    def with_internal_error(self, err: BaseException) -> LaplaceHTTPError:
        self.internal_error = err
        return self

    def cause(self) -> BaseException:
        return self.internal_error or self


def wrap_error(err: BaseException) -> BaseException:
    """Attach the matching sentinel to a LaplaceHTTPError, if any."""
    if isinstance(err, LaplaceHTTPError):
        _classify(err)
    return err


def _classify(http_err: LaplaceHTTPError) -> None:
    body = http_err.message
    if http_err.http_status == 403:
        if body == '{"message":"you don\'t have access to this endpoint"}\n':
            http_err.with_internal_error(ERR_YOU_DO_NOT_HAVE_ACCESS_TO_ENDPOINT)
        elif body == '{"message":"endpoint is not active"}\n':
            http_err.with_internal_error(ERR_ENDPOINT_IS_NOT_ACTIVE)
        if "limit exceeded" in body:
            http_err.with_internal_error(ERR_LIMIT_EXCEEDED)
    elif http_err.http_status == 400:
        if body == '{"message":"invalid id"}\n':
            http_err.with_internal_error(ERR_INVALID_ID)
    elif http_err.http_status == 401:
        if body == '{"message":"this token is not valid"}\n':
            http_err.with_internal_error(ERR_INVALID_TOKEN)
