# -*- coding: utf-8 -*-
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

log = logging.getLogger('VoiceBot.Fallback')

C = TypeVar('C')
R = TypeVar('R')


class AttemptsExhausted(Exception):
    """Every candidate failed. ``failures`` keeps (label, exception) in try order."""

    def __init__(self, failures: List[Tuple[str, BaseException]]):
        super().__init__(f"{len(failures)} candidate(s) failed")
        self.failures = failures


async def first_success(
    candidates: Sequence[C],
    attempt: Callable[[C], Awaitable[R]],
    *,
    timeout: Optional[float] = None,
    label: Callable[[C], str] = str,
) -> R:
    """Tries each candidate in order and returns the first result.

    Each attempt is bounded by ``timeout``; a timed out attempt is cancelled and
    counts as a failure. Later candidates are never touched once one succeeds.
    """
    failures: List[Tuple[str, BaseException]] = []
    total = len(candidates)
    for index, candidate in enumerate(candidates, start=1):
        name = label(candidate)
        try:
            if timeout is None:
                result = await attempt(candidate)
            else:
                result = await asyncio.wait_for(attempt(candidate), timeout=timeout)
        except asyncio.TimeoutError as e:
            log.warning(f"FALLBACK: Candidate {index}/{total} '{name}' timed out after {timeout}s.")
            failures.append((name, e))
            continue
        except Exception as e:
            log.warning(f"FALLBACK: Candidate {index}/{total} '{name}' failed: {type(e).__name__}: {e}")
            failures.append((name, e))
            continue
        if failures:
            log.info(f"FALLBACK: Candidate {index}/{total} '{name}' succeeded after {len(failures)} failure(s).")
        return result
    raise AttemptsExhausted(failures)
