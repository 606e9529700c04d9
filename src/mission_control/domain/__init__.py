from .models import Activity, Actor, Agent, Message, Notification, RunRequest, Task, Workspace

__all__ = ["Activity", "Actor", "Agent", "Message", "Notification", "RunRequest", "Task", "Workspace"]
