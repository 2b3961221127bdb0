"""
Unit tests for grid layout.
"""

from schemaflow.config import LayoutConfig
from schemaflow.graph import Position
from schemaflow.introspect import GridLayout


class TestGridLayout:
    """Tests for GridLayout."""

    def test_default_grid(self):
        """Three nodes per row, rows 400 apart."""
        layout = GridLayout(LayoutConfig())

        positions = [layout.next_position() for _ in range(7)]

        assert positions == [
            Position(100, 100),
            Position(450, 100),
            Position(800, 100),
            Position(100, 500),
            Position(450, 500),
            Position(800, 500),
            Position(100, 900),
        ]

    def test_custom_grid(self):
        layout = GridLayout(LayoutConfig(origin_x=0, origin_y=0, step_x=10, step_y=5, max_x=10))

        positions = [layout.next_position() for _ in range(3)]

        assert positions == [Position(0, 0), Position(10, 0), Position(0, 5)]

    def test_layouts_are_independent(self):
        first = GridLayout(LayoutConfig())
        first.next_position()

        assert GridLayout(LayoutConfig()).next_position() == Position(100, 100)
