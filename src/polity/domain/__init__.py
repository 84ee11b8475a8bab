"""Pure governance rules.

Nothing in this package touches the database:

* Enumerations shared across the engine (see :mod:`enums`).
* The error taxonomy surfaced to callers (see :mod:`errors`).
* The rank hierarchy and seat limits (see :mod:`ranks`).
* The law catalog and vote arithmetic (see :mod:`laws`).
* Uprising thresholds and outcome inference (see :mod:`uprising`).
"""

from . import enums, errors, laws, ranks, uprising

__all__ = [
    "enums",
    "errors",
    "laws",
    "ranks",
    "uprising",
]
