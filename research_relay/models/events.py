from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    STATUS = "status"
    PHASE = "phase"
    PROGRESS = "progress"
    COMPLETED = "completed"
    ERROR = "error"


class Phase(str, Enum):
    PLANNING = "planning"
    RETRIEVING = "retrieving"
    WRITING = "writing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class PipelineEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.event.value, **self.data}

    def format(self) -> str:
        return f"event: {self.event.value}\ndata: {json.dumps(self.data)}\n\n"
