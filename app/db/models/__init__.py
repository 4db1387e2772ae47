from app.db.models.event import Event
from app.db.models.thread import Thread
from app.db.models.user import User
from app.db.models.user_event import UserEvent
from app.db.models.user_processing_state import UserProcessingState

__all__ = ["Event", "Thread", "User", "UserEvent", "UserProcessingState"]
