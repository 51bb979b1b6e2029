from __future__ import annotations

from collections.abc import Iterator

import pytest

from chat_parser.config import Settings
from chat_parser.db import Database


class FakeCompletionClient:
    """Stands in for CompletionClient: replies per model, records every call.

    A reply that is an exception instance is raised instead of returned.
    Models without a configured reply raise AssertionError.
    """

    def __init__(self, replies: dict[str, str | Exception]) -> None:
        self.replies = replies
        self.calls: list[str] = []
        self.prompts: list[str] = []

    def complete(self, model: str, prompt: str, trace=None) -> str:
        self.calls.append(model)
        self.prompts.append(prompt)
        if model not in self.replies:
            raise AssertionError(f"model {model} should not have been called")
        reply = self.replies[model]
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture()
def database() -> Iterator[Database]:
    db = Database("sqlite://")
    yield db
    db.close()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        openai_api_key="test-key",
        candidate_models=["model-a", "model-b", "model-c"],
        database_url="sqlite://",
        app_env="development",
    )
