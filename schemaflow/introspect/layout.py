"""Deterministic grid placement of introspected nodes."""

from __future__ import annotations

from ..config import LayoutConfig
from ..graph.model import Position


class GridLayout:
    """Hands out positions row by row.

    The cursor starts at the origin and moves right by ``step_x``; once it
    passes ``max_x`` it returns to ``origin_x`` on the next row.

    Example:
        >>> layout = GridLayout(LayoutConfig())
        >>> [layout.next_position() for _ in range(4)]
        [Position(x=100, y=100), Position(x=450, y=100),
         Position(x=800, y=100), Position(x=100, y=500)]
    """

    def __init__(self, config: LayoutConfig) -> None:
        self.config = config
        self._x = config.origin_x
        self._y = config.origin_y

    def next_position(self) -> Position:
        position = Position(x=self._x, y=self._y)
        self._x += self.config.step_x
        if self._x > self.config.max_x:
            self._x = self.config.origin_x
            self._y += self.config.step_y
        return position
