# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                     SCHEDULE WATCHER ERROR HANDLING                        ║
# ║ Best-effort wrapper for async calls and a circuit breaker that stops the  ║
# ║ watcher from hammering a collaborator that keeps failing.                  ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# Standard library imports
import threading
import time
from typing import Any, Callable, Optional

# Local application imports
from utils.logging import logger

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ ASYNCHRONOUS ERROR HANDLING                                                ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- with_async_error_handling ---
# Wraps an awaitable call with standardized error handling.
# Catches exceptions, logs them with a traceback and returns a default value.
# Cancellation is never swallowed.
# Args:
#     coro_func: The async function to execute.
#     *args: Positional arguments for the function.
#     default_value: The value to return if an exception occurs.
#     error_message: A prefix for the log message when an error occurs.
#     on_error: Optional callback receiving the exception.
#     **kwargs: Keyword arguments for the function.
# Returns: The result of the awaitable or the default value on error.
async def with_async_error_handling(
    coro_func: Callable,
    *args,
    default_value: Any = None,
    error_message: str = "An async error occurred",
    on_error: Optional[Callable[[Exception], Any]] = None,
    **kwargs
) -> Any:
    try:
        return await coro_func(*args, **kwargs)
    except Exception as e:
        name = getattr(coro_func, "__qualname__", getattr(coro_func, "__name__", repr(coro_func)))
        logger.exception(f"{error_message} in {name}: {e}")
        if on_error is not None:
            on_error(e)
        return default_value

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ CIRCUIT BREAKER PATTERN IMPLEMENTATION                                     ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class ErrorTracker:
    # --- __init__ ---
    # Args:
    #     name: A unique name identifying the operation being tracked.
    #     threshold: Consecutive errors required to open the circuit.
    #     reset_after_seconds: How long the circuit stays open before the
    #                          next call is allowed through again.
    #     clock: Monotonic time source (tests pass a fake).
    def __init__(self, name: str, threshold: int = 5, reset_after_seconds: float = 300,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.threshold = threshold
        self.reset_after_seconds = reset_after_seconds
        self.error_count = 0
        self.circuit_open = False
        self.last_error_time: Optional[float] = None
        self._clock = clock
        self._lock = threading.RLock()

    # --- record_error ---
    # Records a failure; opens the circuit once the threshold is reached.
    # Returns: True if the circuit is now open.
    def record_error(self, error: Exception) -> bool:
        with self._lock:
            self.error_count += 1
            self.last_error_time = self._clock()
            if self.error_count >= self.threshold and not self.circuit_open:
                logger.warning(
                    f"Circuit breaker opened for '{self.name}' after {self.error_count} errors "
                    f"(last: {error}). Will retry in {self.reset_after_seconds}s."
                )
                self.circuit_open = True
            return self.circuit_open

    def record_success(self) -> None:
        with self._lock:
            if self.error_count or self.circuit_open:
                self.reset()

    # --- is_available ---
    # False while the circuit is open; once the reset timeout has elapsed
    # the circuit closes and the next call is let through.
    def is_available(self) -> bool:
        with self._lock:
            if not self.circuit_open:
                return True
            elapsed = self._clock() - (self.last_error_time or 0)
            if elapsed > self.reset_after_seconds:
                logger.info(f"Attempting to reset circuit breaker for '{self.name}' after {elapsed:.1f}s")
                self.reset()
                return True
            return False

    def reset(self) -> None:
        with self._lock:
            if self.circuit_open:
                logger.info(f"Circuit breaker for '{self.name}' has been reset.")
            self.circuit_open = False
            self.error_count = 0
            self.last_error_time = None
