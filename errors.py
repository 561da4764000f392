"""
errors.py - Failure categories shared by the sensor collaborators and the session engine
"""


class DanceCoachError(Exception):
    """Base class for all coach errors"""


class PermissionDeniedError(DanceCoachError):
    """A sensor capability (camera, microphone, motion) was refused"""

    def __init__(self, sensor: str, message: str = ""):
        self.sensor = sensor
        super().__init__(message or f"{sensor} permission denied")


class DeviceUnavailableError(DanceCoachError):
    """The hardware or API behind a sensor is absent"""

    def __init__(self, sensor: str, message: str = ""):
        self.sensor = sensor
        super().__init__(message or f"{sensor} not available on this device")


class TransientDetectionError(DanceCoachError):
    """A single pose or tempo read failed; the loop continues on the next tick"""


class PersistenceError(DanceCoachError):
    """A record could not be written to or read from the store"""
