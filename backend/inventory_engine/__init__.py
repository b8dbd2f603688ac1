"""Recipe-to-inventory matching and stock deduction engine."""

__version__ = "0.1.0"
