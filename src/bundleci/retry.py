# retry.py
# Bounded retry shared by every retryable step. Signed and unsigned
# packaging go through the same loop; only the environment differs.
from __future__ import annotations

import time
from typing import Callable, Optional, Tuple

from .model import RetryPolicy
from .ui.console import Console, get_console


def retry_call(
    invoke: Callable[[], int],
    policy: RetryPolicy,
    *,
    console: Optional[Console] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Tuple[int, int]:
    """
    Call `invoke` until it returns 0 or the policy's attempts are used up.

    Returns (last_exit_code, attempts_made). No sleep after the final attempt.
    """
    console = console or get_console()
    attempt = 0
    code = 0
    while attempt < policy.max_attempts:
        code = invoke()
        if code == 0:
            return 0, attempt + 1
        attempt += 1
        # the notice follows every failure, the last one included
        console.print_retry(attempt)
        if attempt < policy.max_attempts:
            sleep(policy.backoff)

    console.print_retry_exhausted(policy.max_attempts)
    return code, attempt
