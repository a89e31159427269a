"""Cooperative cancellation for long brute-force sessions."""

from __future__ import annotations

import multiprocessing

__all__ = ["CancelToken"]


class CancelToken:
    """
    A cancellation flag shared by the crack loop and its searches.

    Backed by a multiprocessing event so it can be handed to worker
    processes when needed. Cancelling is sticky until reset().
    """

    def __init__(self) -> None:
        self.event = multiprocessing.Event()

    def cancel(self) -> None:
        """Request every running search to stop."""
        self.event.set()

    def reset(self) -> None:
        self.event.clear()

    def is_cancelled(self) -> bool:
        return self.event.is_set()
