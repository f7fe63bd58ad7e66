"""Users module — Company and User records consumed by the engine."""

from worktime.users.models import Company, User

__all__ = ["Company", "User"]
