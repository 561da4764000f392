# Pydantic models (schemas.py) for UI bridge request validation
# schemas.py

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


PERCENT_KINDS = ("posture", "energy")
COUNTER_KINDS = ("steps", "turns")


# Session schemas
class StartSessionRequest(BaseModel):
    routine_name: Optional[str] = None


class ReadingRequest(BaseModel):
    kind: str
    value: float

    @model_validator(mode="after")
    def check_range(self):
        if self.kind in PERCENT_KINDS and not 0 <= self.value <= 100:
            raise ValueError(f"{self.kind} must be between 0 and 100")
        if self.kind in COUNTER_KINDS and self.value < 0:
            raise ValueError(f"{self.kind} cannot be negative")
        return self


# Sensor relay schemas
class KeypointModel(BaseModel):
    x: float
    y: float
    score: Optional[float] = None
    confidence: Optional[float] = None
    name: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        confidence = self.confidence if self.confidence is not None else self.score
        return {"x": self.x, "y": self.y, "confidence": confidence or 0.0, "name": self.name}


class PoseFrameRequest(BaseModel):
    poses: List[List[KeypointModel]] = []


class MotionSampleRequest(BaseModel):
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None
    timestamp_ms: Optional[int] = None


class AudioChunkRequest(BaseModel):
    samples: List[float] = Field(default_factory=list)


# Permission and settings schemas
class PermissionReport(BaseModel):
    camera: bool = False
    microphone: bool = False
    motion: bool = False


class SettingsUpdate(BaseModel):
    settings: Dict[str, Any]


class UserNameRequest(BaseModel):
    name: str = Field(min_length=1)


class RoutineRequest(BaseModel):
    routine: str = Field(min_length=1)


class ImportRequest(BaseModel):
    sessions: List[Dict[str, Any]]
    settings: Optional[Dict[str, Any]] = None
