from enum import Enum


class Direction(Enum):
    FORWARD = 0
    INVERSE = 1

    def toggled(self) -> "Direction":
        """Return the opposite direction."""
        return _TOGGLED[self]


_TOGGLED = {
    Direction.FORWARD: Direction.INVERSE,
    Direction.INVERSE: Direction.FORWARD,
}
