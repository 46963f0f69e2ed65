# cancel.py
from __future__ import annotations

import threading
from typing import Optional


class CancelToken:
    """
    Cooperative cancellation flag. A child token reports cancelled when it or
    any of its ancestors was cancelled; cancelling a child leaves the parent
    alone.
    """

    def __init__(self, parent: Optional[CancelToken] = None):
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    def child(self) -> CancelToken:
        return CancelToken(parent=self)
