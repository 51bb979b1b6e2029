import logging
from typing import Any, Optional

import openai
from openai import OpenAI
from langfuse import Langfuse

from chat_parser.config import Settings
from chat_parser.exceptions import (
    CompletionAccessError,
    CompletionError,
    CompletionRateLimitError,
    CompletionTimeoutError,
    EmptyCompletionError,
)

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are a helpful assistant that parses chat logs and returns structured "
    "JSON data. Always return valid JSON only."
)


def build_langfuse(settings: Settings) -> Optional[Langfuse]:
    if not (settings.langfuse_public_key and settings.langfuse_secret_key):
        return None
    return Langfuse(
        public_key=settings.langfuse_public_key,
        secret_key=settings.langfuse_secret_key,
        host=settings.langfuse_host,
    )


class CompletionClient:
    """
    One chat-completion call per `complete()`, no SDK-level retries.

    The timeout is passed on every call so that it bounds exactly one attempt;
    when it fires the SDK aborts that HTTP request and raises.
    """

    def __init__(
        self,
        api_key: str,
        timeout: float = 25.0,
        max_tokens: int = 4000,
        temperature: float = 0.1,
        base_url: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client or OpenAI(
            api_key=api_key, base_url=base_url, max_retries=0
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompletionClient":
        return cls(
            api_key=settings.openai_api_key,
            timeout=settings.completion_timeout,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            base_url=settings.openai_base_url,
        )

    def complete(self, model: str, prompt: str, trace: Any = None) -> str:
        """
        Return the model's text reply, or raise a CompletionError subclass.
        """
        generation = None
        if trace is not None:
            generation = trace.generation(
                name="chat_extraction_attempt",
                model=model,
                input=prompt,
                model_parameters={
                    "temperature": self.temperature,
                    "max_tokens": self.max_tokens,
                },
            )

        try:
            text = self._request(model, prompt)
        except CompletionError as e:
            if generation:
                generation.end(level="ERROR", status_message=str(e))
            raise

        if generation:
            generation.end(output=text)
        return text

    def _request(self, model: str, prompt: str) -> str:
        try:
            resp = self._client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
        except openai.APITimeoutError as e:
            raise CompletionTimeoutError(
                f"Model {model} timed out after {self.timeout}s", model=model
            ) from e
        except openai.RateLimitError as e:
            raise CompletionRateLimitError(
                f"Model {model} is rate limited: {e}", model=model
            ) from e
        except (openai.PermissionDeniedError, openai.AuthenticationError,
                openai.NotFoundError) as e:
            raise CompletionAccessError(
                f"No access to model {model}: {e}", model=model
            ) from e
        except openai.OpenAIError as e:
            raise CompletionError(f"Model {model} failed: {e}", model=model) from e

        text = resp.choices[0].message.content if resp.choices else None
        if not text or not text.strip():
            raise EmptyCompletionError(f"No response from model {model}", model=model)
        return text
