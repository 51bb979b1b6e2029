class ChatParserError(Exception):
    """Base class for all errors raised by the chat parser."""


class ConfigurationError(ChatParserError):
    """A required setting (API key, database URL) is missing."""


class InvalidInputError(ChatParserError):
    """The uploaded text is empty or exceeds the configured ceiling."""


# -----------------------------
# Completion attempts
# -----------------------------
class CompletionError(ChatParserError):
    """A single completion attempt failed. Never fatal to the pipeline."""

    def __init__(self, message: str, model: str | None = None):
        super().__init__(message)
        self.model = model


class CompletionTimeoutError(CompletionError):
    pass


class CompletionRateLimitError(CompletionError):
    pass


class CompletionAccessError(CompletionError):
    pass


class EmptyCompletionError(CompletionError):
    pass


# -----------------------------
# Extraction
# -----------------------------
class ExtractionError(ChatParserError):
    """The pipeline could not produce any messages."""


class ExtractionTimeoutError(ExtractionError):
    pass


class AllModelsFailedError(ExtractionError):
    pass


class ResponseParseError(ExtractionError):
    def __init__(self, message: str, preview: str = "", diagnostic: str = ""):
        super().__init__(message)
        self.preview = preview
        self.diagnostic = diagnostic


class InvalidMessagesError(ExtractionError):
    """The parsed response does not have the expected shape."""
