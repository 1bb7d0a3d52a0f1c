"""Error taxonomy shared by the parser, stores, matcher and category mapper.

- ``ParseFailure``: no recognizable statement content. Not fatal by itself;
  raised only where it blocks a downstream step (upload naming, merging).
- ``StoreFailure``: a Blob Store / Record Store backend error.
- ``NotFoundFailure``: an expected-missing resource (a ``StoreFailure``
  subtype so callers that only care about backend errors can catch one type).
- ``ValidationFailure``: rejected input, raised before any store call.
"""

from __future__ import annotations


class ReconError(Exception):
    """Base class for all ``statement_recon`` errors."""


class ParseFailure(ReconError):
    pass


class StoreFailure(ReconError):
    pass


class NotFoundFailure(StoreFailure):
    pass


class ValidationFailure(ReconError, ValueError):
    pass


__all__ = [
    "ReconError",
    "ParseFailure",
    "StoreFailure",
    "NotFoundFailure",
    "ValidationFailure",
]
