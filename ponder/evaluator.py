"""Contract for the external text evaluator.

The evaluator is whatever executes a prompt against a language model. The
loop only ever needs ``execute(prompt, system_prompt)`` and treats the
returned content as untrusted text.

``run_evaluator`` is the single entry point the rest of the package uses:
it bounds the call with a timeout and turns every failure into an
unsuccessful ``EvaluatorResult``. Evaluator failures are never raised to
callers.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass
class EvaluatorResult:
    """Outcome of one evaluator call."""
    success: bool
    content: str = ""
    duration: float = 0.0  # Seconds
    error: Optional[str] = None

    @property
    def usable(self) -> bool:
        """Call succeeded and produced non-empty content."""
        return self.success and bool(self.content.strip())


@runtime_checkable
class Evaluator(Protocol):
    """Text-in, text-out executor."""

    async def execute(
        self, prompt: str, system_prompt: str
    ) -> Union[EvaluatorResult, Mapping[str, Any]]:
        ...


def _coerce_result(raw: Any, duration: float) -> EvaluatorResult:
    if isinstance(raw, EvaluatorResult):
        return raw
    if isinstance(raw, Mapping):
        content = raw.get("content")
        return EvaluatorResult(
            success=bool(raw.get("success", False)),
            content=content if isinstance(content, str) else "",
            duration=float(raw.get("duration", duration) or duration),
            error=raw.get("error"),
        )
    if isinstance(raw, str):
        return EvaluatorResult(success=True, content=raw, duration=duration)
    return EvaluatorResult(
        success=False,
        duration=duration,
        error=f"Unsupported evaluator result type: {type(raw).__name__}",
    )


async def run_evaluator(
    evaluator: Optional[Evaluator],
    prompt: str,
    system_prompt: str = "",
    timeout: float = 30.0,
) -> EvaluatorResult:
    """Execute a prompt with a timeout, never raising.

    Args:
        evaluator: Evaluator to call, or None when none is configured
        prompt: Request text
        system_prompt: Role/instructions for the evaluator
        timeout: Seconds before the call is abandoned

    Returns:
        EvaluatorResult; ``success`` is False on timeout, exception, or
        when no evaluator is configured
    """
    if evaluator is None:
        return EvaluatorResult(success=False, error="No evaluator configured")

    start = time.perf_counter()
    try:
        raw = await asyncio.wait_for(
            evaluator.execute(prompt, system_prompt),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Evaluator timed out after {timeout}s")
        return EvaluatorResult(
            success=False,
            duration=time.perf_counter() - start,
            error="timeout",
        )
    except Exception as e:
        logger.warning(f"Evaluator call failed: {e}")
        return EvaluatorResult(
            success=False,
            duration=time.perf_counter() - start,
            error=str(e),
        )

    result = _coerce_result(raw, time.perf_counter() - start)
    if not result.success:
        logger.debug(f"Evaluator reported failure: {result.error}")
    return result
