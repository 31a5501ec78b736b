"""
Bounded retry helpers for state-mutating collaborator calls.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

T = TypeVar("T")
LogFunc = Callable[[int, str], None]

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_DELAY_SEC = 0.5
DEFAULT_SLIPPAGE_STEPS = (Decimal("1"), Decimal("2"), Decimal("3"))


def _default_log(level: int, msg: str) -> None:
    logging.getLogger(__name__).log(level, msg)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    label: str,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    delay_sec: float = DEFAULT_DELAY_SEC,
    log: Optional[LogFunc] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run an async operation up to ``max_attempts`` times.

    Every failed attempt is logged. The delay between attempts is fixed.
    After the last attempt the final exception propagates unchanged.

    Args:
        fn: Zero-argument coroutine factory; called once per attempt.
        label: Operation name used in log lines.
        max_attempts: Total attempts including the first one.
        delay_sec: Pause between attempts.
        log: Optional log function ``(level, message)``.
        sleep: Awaitable sleep, replaceable in tests.

    Returns:
        Whatever ``fn`` returns on the first successful attempt.
    """
    log = log or _default_log
    attempts = max(1, int(max_attempts))
    last_exc: Optional[BaseException] = None
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            last_exc = exc
            log(logging.WARNING, f"[{label}] attempt {attempt}/{attempts} failed: {exc}")
            if attempt < attempts:
                log(logging.INFO, f"[{label}] retrying in {delay_sec:.1f}s")
                await sleep(delay_sec)
    log(logging.ERROR, f"[{label}] giving up after {attempts} attempts")
    assert last_exc is not None
    raise last_exc


async def with_progressive_slippage(
    fn: Callable[[Decimal], Awaitable[Optional[T]]],
    label: str,
    *,
    slippage_steps: Sequence[Decimal] = DEFAULT_SLIPPAGE_STEPS,
    attempts_per_step: int = 2,
    delay_sec: float = DEFAULT_DELAY_SEC,
    log: Optional[LogFunc] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Optional[T]:
    """
    Retry a swap-like call, widening slippage after each failed step.

    A call returning ``None`` counts as a failure, same as a raised error.

    Args:
        fn: Coroutine factory taking the slippage percent for this attempt.
        label: Operation name used in log lines.
        slippage_steps: Slippage percents tried in order.
        attempts_per_step: Attempts made at each slippage level.
        delay_sec: Pause between attempts.
        log: Optional log function.
        sleep: Awaitable sleep, replaceable in tests.

    Returns:
        First non-None result, or None when every attempt failed.
    """
    log = log or _default_log
    steps = list(slippage_steps) or list(DEFAULT_SLIPPAGE_STEPS)
    per_step = max(1, int(attempts_per_step))
    total = len(steps) * per_step
    attempt = 0
    for slippage in steps:
        for _ in range(per_step):
            attempt += 1
            try:
                result = await fn(slippage)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                log(logging.WARNING, f"[{label}] attempt {attempt}/{total} at {slippage}% slippage failed: {exc}")
                result = None
            if result is not None:
                return result
            if attempt < total:
                await sleep(delay_sec)
    log(logging.ERROR, f"[{label}] all {total} attempts failed")
    return None
