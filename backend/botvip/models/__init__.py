"""SQLAlchemy models for BOTVIP.

All models are imported here so that ``Base.metadata.create_all`` can
discover them. If you add a new model, import it in this file.
"""

from botvip.models.processed_event import ProcessedEvent
from botvip.models.subscriber import Subscriber

__all__ = [
    "ProcessedEvent",
    "Subscriber",
]
