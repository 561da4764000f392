"""
permissions.py - Sensor permission requests and their persisted status
"""

import logging
from typing import Callable, Dict, Optional

from errors import DeviceUnavailableError, PermissionDeniedError, PersistenceError

logger = logging.getLogger(__name__)

SENSORS = ("camera", "microphone", "motion")


class PermissionsManager:
    """
    Asks each sensor for access through a probe callable.

    A probe returns True when access is granted, False or a
    PermissionDeniedError when refused, DeviceUnavailableError when the
    hardware is missing. A denied sensor is simply absent for the session.
    """

    def __init__(self, gateway=None, probes: Optional[Dict[str, Callable[[], bool]]] = None):
        self.gateway = gateway
        self.probes = dict(probes or {})
        self.status: Dict[str, bool] = {name: False for name in SENSORS}

    def _request(self, sensor: str) -> bool:
        probe = self.probes.get(sensor)
        try:
            if probe is None:
                raise DeviceUnavailableError(sensor)
            granted = bool(probe())
        except (PermissionDeniedError, DeviceUnavailableError) as e:
            logger.warning(f"⚠️ {e}")
            granted = False
        except Exception as e:
            logger.error(f"❌ {sensor} permission request failed: {e}")
            granted = False

        self.status[sensor] = granted
        logger.info(f"{'✅' if granted else '🚫'} {sensor} access {'granted' if granted else 'denied'}")
        return granted

    def request_camera_access(self) -> bool:
        return self._request("camera")

    def request_microphone_access(self) -> bool:
        return self._request("microphone")

    def request_motion_access(self) -> bool:
        return self._request("motion")

    def request_all(self) -> Dict[str, bool]:
        results = {
            "camera": self.request_camera_access(),
            "microphone": self.request_microphone_access(),
            "motion": self.request_motion_access()
        }
        if self.gateway is not None:
            try:
                self.gateway.save_permission_status(results)
            except PersistenceError as e:
                logger.warning(f"⚠️ Could not persist permission status: {e}")
        return results

    def load_saved_status(self) -> Dict[str, bool]:
        if self.gateway is not None:
            saved = self.gateway.get_permission_status() or {}
            for sensor in SENSORS:
                self.status[sensor] = bool(saved.get(sensor, False))
        return dict(self.status)
