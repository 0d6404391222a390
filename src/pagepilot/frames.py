"""
PagePilot - Frame context

Tracks which frame of a tab "evaluate in frame" style tools operate on.

The selection is stored as a FrameToken stamped with the tab's navigation
generation. A top-level navigation bumps the generation and drops the
selection in the same event callback, so a token captured before the
navigation can never resolve to a frame of the new document.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pagepilot.errors import FrameNotFound

logger = logging.getLogger("pagepilot.frames")


@dataclass(frozen=True)
class FrameToken:
    """A selected frame, valid only for the generation it was taken in."""
    frame: Any
    generation: int
    description: str = ""


class FrameContext:
    """Current-frame pointer for one tab. Main frame when nothing is selected."""

    def __init__(self):
        self._generation = 0
        self._token: FrameToken | None = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def token(self) -> FrameToken | None:
        return self._token

    @property
    def is_main(self) -> bool:
        return self._token is None

    def select(self, frame: Any, description: str = "") -> FrameToken:
        self._token = FrameToken(frame=frame, generation=self._generation, description=description)
        return self._token

    def clear(self):
        """Back to the main frame without invalidating outstanding tokens."""
        self._token = None

    def reset(self):
        """Top-level navigation happened: new generation, main frame."""
        self._generation += 1
        if self._token is not None:
            logger.debug(f"Frame selection dropped on navigation: {self._token.description}")
        self._token = None

    def resolve(self, main_frame: Any, token: FrameToken | None = None) -> Any:
        """Return the frame to operate on.

        Raises:
            FrameNotFound: the token belongs to an older generation or its
                frame has been detached from the page.
        """
        token = token if token is not None else self._token
        if token is None:
            return main_frame
        if token.generation != self._generation:
            raise FrameNotFound(token.description or "previously selected frame",
                                reason="page navigated since the frame was selected")
        if token.frame.is_detached():
            raise FrameNotFound(token.description or "previously selected frame",
                                reason="frame is detached")
        return token.frame
