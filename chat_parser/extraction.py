import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

from chat_parser.completion import CompletionClient
from chat_parser.exceptions import (
    AllModelsFailedError,
    CompletionError,
    CompletionTimeoutError,
    ExtractionTimeoutError,
    InvalidInputError,
    InvalidMessagesError,
    ResponseParseError,
)
from chat_parser.manual_parser import parse_chat_lines
from chat_parser.models import ExtractedMessage
from chat_parser.sanitizer import (
    diagnose_response,
    parse_json_array,
    preview,
    scan_key_values,
)

logger = logging.getLogger(__name__)


# A strategy turns the raw model reply into a parsed value, or raises
# ValueError to pass to the next one. Any value it returns, JSON null
# included, goes on to validation.
ResponseStrategy = Callable[[str], Any]


def recover_key_values(raw: str) -> List[dict]:
    records = scan_key_values(raw)
    if records is None:
        raise ValueError("no sender/timestamp/message pairs found")
    return records


RESPONSE_STRATEGIES: Sequence[Tuple[str, ResponseStrategy]] = (
    ("model", parse_json_array),
    ("key_value_scan", recover_key_values),
)


# ============================================================
# Prompt construction
# ============================================================
def build_prompt(chat_text: str) -> str:
    return f"""
You are a chat log parser. Parse the following chat log text and extract structured data.

Return ONLY a valid JSON array where each object has exactly the following fields:
{{
  "sender": "string (name of the person who sent the message)",
  "timestamp": "string (timestamp or time of the message)",
  "message": "string (the actual message content)"
}}

Rules:
1. Extract ALL messages from the chat log
2. If timestamp is not available, use "Unknown" as the value
3. If sender is not available, use "Unknown" as the value
4. Clean up the message content (remove extra whitespace, but preserve line breaks within messages)
5. Return ONLY the JSON array, no markdown code fences, no other text or explanation
6. Ensure the JSON is valid and properly formatted

Chat log content:
""".lstrip() + chat_text


# ============================================================
# Validation
# ============================================================
def _text_or_default(value: Any, default: str) -> str:
    if not value:
        return default
    return value if isinstance(value, str) else str(value)


def normalize_message(item: Any, index: int) -> ExtractedMessage:
    if isinstance(item, ExtractedMessage):
        item = item.model_dump()
    if not isinstance(item, dict):
        raise InvalidMessagesError(f"Invalid message at index {index}")
    return ExtractedMessage(
        sender=_text_or_default(item.get("sender"), "Unknown"),
        timestamp=_text_or_default(item.get("timestamp"), "Unknown"),
        message=_text_or_default(item.get("message"), ""),
    )


def validate_messages(parsed: Any) -> List[ExtractedMessage]:
    if not isinstance(parsed, list):
        raise InvalidMessagesError("Expected an array of messages")
    return [normalize_message(item, i) for i, item in enumerate(parsed)]


# ============================================================
# Pipeline
# ============================================================
@dataclass
class ExtractionResult:
    messages: List[ExtractedMessage]
    source: str                            # "model", "key_value_scan" or "manual"
    model: Optional[str] = None
    attempts: List[str] = field(default_factory=list)

    @property
    def fallback(self) -> bool:
        return self.source == "manual"


@dataclass
class _AttemptOutcome:
    text: Optional[str] = None
    model: Optional[str] = None
    last_error: Optional[CompletionError] = None
    attempted: List[str] = field(default_factory=list)


class ExtractionPipeline:
    """
    Turns one chat transcript into validated messages.

    Candidate models are tried strictly in order, one at a time; the first
    non-empty reply is parsed. If no model answers, the manual line parser
    runs against the uploaded text.
    """

    def __init__(
        self,
        client: CompletionClient,
        candidate_models: Sequence[str],
        max_chars: Optional[int] = None,
        langfuse: Any = None,
    ):
        if not candidate_models:
            raise ValueError("At least one candidate model is required")
        self.client = client
        self.candidate_models = list(candidate_models)
        self.max_chars = max_chars
        self.langfuse = langfuse

    def extract(self, text: str) -> ExtractionResult:
        self._check_input(text)

        trace = None
        if self.langfuse:
            trace = self.langfuse.trace(
                name="chat_extraction",
                metadata={"chars": len(text), "models": self.candidate_models},
            )

        outcome = self._run_attempts(build_prompt(text), trace)

        if outcome.text is None:
            result = self._manual_fallback(text, outcome)
        else:
            result = self._parse_response(outcome)

        if trace:
            trace.update(
                output={"messages": len(result.messages), "source": result.source}
            )
        logger.info(
            "Extracted %d messages via %s%s",
            len(result.messages),
            result.source,
            f" ({result.model})" if result.model else "",
        )
        return result

    def _check_input(self, text: str):
        if not text or not text.strip():
            raise InvalidInputError("File is empty")
        if self.max_chars is not None and len(text) > self.max_chars:
            raise InvalidInputError(
                f"File content too long ({len(text)} characters, "
                f"maximum is {self.max_chars})"
            )

    def _run_attempts(self, prompt: str, trace: Any) -> _AttemptOutcome:
        outcome = _AttemptOutcome()
        for model in self.candidate_models:
            outcome.attempted.append(model)
            try:
                text = self.client.complete(model, prompt, trace=trace)
            except CompletionError as e:
                logger.warning("Completion attempt with %s failed: %s", model, e)
                outcome.last_error = e
                continue

            if text and text.strip():
                outcome.text = text
                outcome.model = model
                return outcome
        return outcome

    def _manual_fallback(self, text: str, outcome: _AttemptOutcome) -> ExtractionResult:
        manual = parse_chat_lines(text)
        if manual:
            logger.warning(
                "All models failed, manual parser recovered %d messages", len(manual)
            )
            return ExtractionResult(
                messages=validate_messages(manual),
                source="manual",
                attempts=outcome.attempted,
            )

        if isinstance(outcome.last_error, CompletionTimeoutError):
            raise ExtractionTimeoutError(
                "Request timed out while processing the chat log. "
                "Try a smaller file."
            )
        last = outcome.last_error or "no response"
        raise AllModelsFailedError(f"All models failed. Last error: {last}")

    def _parse_response(self, outcome: _AttemptOutcome) -> ExtractionResult:
        raw = outcome.text
        for source, strategy in RESPONSE_STRATEGIES:
            try:
                parsed = strategy(raw)
            except ValueError:
                continue
            if source != "model":
                logger.warning("JSON parse failed, recovered records via %s", source)
            return ExtractionResult(
                messages=validate_messages(parsed),
                source=source,
                model=outcome.model,
                attempts=outcome.attempted,
            )

        diagnostic = diagnose_response(raw)
        logger.error("Failed to parse model response (%s): %s", diagnostic, preview(raw))
        raise ResponseParseError(
            f"Invalid JSON response from model: {diagnostic}. "
            f"Response preview: {preview(raw)}",
            preview=preview(raw),
            diagnostic=diagnostic,
        )
