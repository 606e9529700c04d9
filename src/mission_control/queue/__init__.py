from .dispatcher import InFlightSet, QueueDispatcher, TickReport
from .run_requests import RunRequestQueue

__all__ = ["InFlightSet", "QueueDispatcher", "RunRequestQueue", "TickReport"]
