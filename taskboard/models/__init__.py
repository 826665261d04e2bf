from .task import Task, TaskPriority, TaskStatus
from .timestamps import utcnow
from .user import User
