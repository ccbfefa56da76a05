"""Error kinds raised by the ingestion pipeline.

Only ConfigError and ProviderError escape an ingestion run. The rest are
per-article failures that the orchestrator logs and absorbs.
"""


class PipelineError(Exception):
    pass


class ConfigError(PipelineError):
    """Search provider credentials are missing."""


class ProviderError(PipelineError):
    """Search provider returned a non-2xx status or an unusable response."""


class FetchError(PipelineError):
    """An article page could not be fetched (network, timeout, non-2xx)."""


class UnsafeURLError(FetchError):
    """URL has an invalid scheme or resolves to a private/reserved address."""


class ParseError(PipelineError):
    """No confident main-content region could be found in a document."""


class ImageValidationError(PipelineError):
    """Image candidate URL was rejected by the validation gate."""
