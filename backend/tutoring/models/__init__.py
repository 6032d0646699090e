"""
Model registry.

Importing this package registers every mapped table on ``Base.metadata``.
"""

from .availability import AvailableSlot
from .purchase import CoursePurchase
from .reservation import Reservation
from .teacher import Teacher

__all__ = [
    "AvailableSlot",
    "CoursePurchase",
    "Reservation",
    "Teacher",
]
