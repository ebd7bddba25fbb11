"""Exception hierarchy for Gmail Analyzer."""


class GmailAnalyzerError(Exception):
    """Base exception for all Gmail Analyzer errors."""


class WatermarkNotFound(GmailAnalyzerError):
    """No watermark has been persisted yet (first run)."""


class PersistenceError(GmailAnalyzerError):
    """Failed to read or write the watermark or the result snapshot."""


class SourceFetchError(GmailAnalyzerError):
    """The mail source failed to list or fetch messages."""


class InferenceError(GmailAnalyzerError):
    """Base class for failures of the LLM classification stage.

    These never fail a run: the pipeline converts them into a
    fail-open result for the affected message.
    """


class ServiceStartFailed(InferenceError):
    """The inference service is down and could not be started."""


class ServiceStartTimeout(ServiceStartFailed):
    """The inference service did not become ready within the start timeout."""


class InferenceCallFailed(InferenceError):
    """The generate request failed at the transport or HTTP level."""


class UnparseableResponse(InferenceError):
    """The model reply did not contain a usable JSON object."""


class AuthenticationError(GmailAnalyzerError):
    """No usable Gmail credentials were found."""
