from runners_awareness.app.models.user import User

__all__ = ["User"]
