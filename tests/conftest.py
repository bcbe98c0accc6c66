"""Pytest configuration and shared fixtures."""

from unittest.mock import AsyncMock

import numpy as np
import pytest

from ponder.events import RecordingEventSink
from ponder.evaluator import EvaluatorResult
from ponder.memory.repository import InMemoryRepository


class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def scripted_evaluator(*responses):
    """Evaluator whose execute() returns the given contents in order.

    A string becomes a successful result; an exception instance is raised.
    """
    evaluator = AsyncMock()
    side_effect = []
    for response in responses:
        if isinstance(response, BaseException):
            side_effect.append(response)
        else:
            side_effect.append(EvaluatorResult(success=True, content=response))
    evaluator.execute.side_effect = side_effect
    return evaluator


def routing_evaluator(routes: dict[str, str], default: str = ""):
    """Evaluator that answers based on which key appears in the prompt."""
    evaluator = AsyncMock()

    async def execute(prompt, system_prompt):
        for key, content in routes.items():
            if key in prompt:
                return EvaluatorResult(success=True, content=content)
        return EvaluatorResult(success=bool(default), content=default)

    evaluator.execute.side_effect = execute
    return evaluator


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def sink():
    return RecordingEventSink()


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def scripted():
    return scripted_evaluator


@pytest.fixture
def routing():
    return routing_evaluator
