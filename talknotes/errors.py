"""Error taxonomy shared by the pipeline, the services, and the API layer."""

from __future__ import annotations


class TalknotesError(Exception):
    """Base class for all errors raised deliberately by talknotes."""


class NotFoundError(TalknotesError):
    """A session (or other resource) does not exist."""


class InvalidRequestError(TalknotesError):
    """The caller supplied input that cannot be acted on. No state was changed."""


class NotReadyError(InvalidRequestError):
    """The session has not produced the artifact the operation needs yet."""


class InvalidTransitionError(TalknotesError):
    """A session status change that the lifecycle does not allow."""


class UpstreamServiceError(TalknotesError):
    """An external engine failed, timed out, or returned something unusable."""
