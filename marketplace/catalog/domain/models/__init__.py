from .catalog import Gig


__all__ = [
    "Gig",
]
