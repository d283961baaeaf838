"""
Inference Device Selection
===========================
Resolves the device string the OpenVINO detection backend compiles its
model for, and reports what the ``devices`` command prints.

Resolution order for a requested device:

    "AUTO"       -> "AUTO" whenever a Core could be created
    listed name  -> that name
    anything else -> "CPU"

``use_gpu`` in the model settings simply requests ``"GPU"`` through the
same rules, so a machine without a GPU still runs on CPU.
"""

import logging
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

FALLBACK_DEVICE = "CPU"
AUTO_DEVICE = "AUTO"
REPORTED_PROPERTIES = (
    "FULL_DEVICE_NAME",
    "DEVICE_ARCHITECTURE",
    "OPTIMAL_NUMBER_OF_INFER_REQUESTS",
)


def _create_core():
    """Return a new ``openvino.Core``, or None when openvino is absent."""
    try:
        import openvino as ov
    except ImportError:
        logger.warning("openvino is not installed; only %s can be selected", FALLBACK_DEVICE)
        return None
    return ov.Core()


class DeviceManager:
    """Device listing and selection over one OpenVINO Core.

    Usage::

        dm = DeviceManager()
        dm.select_for(use_gpu=True)     # "GPU" if present, else "CPU"

    Parameters
    ----------
    core : openvino.Core, optional
        Core to query; the OpenVINO backend passes the one it compiles
        with.  Created on demand when omitted.
    """

    def __init__(self, core=None):
        self._core = core if core is not None else _create_core()
        self._devices: List[str] = self._query_devices()

    def _query_devices(self) -> List[str]:
        if self._core is None:
            return []
        try:
            devices = list(self._core.available_devices)
        except RuntimeError as exc:
            logger.error("Device query failed: %s", exc)
            return []
        logger.debug("Inference devices: %s", devices)
        return devices

    @property
    def core(self):
        return self._core

    def list_devices(self) -> List[str]:
        return list(self._devices)

    def select(self, preferred: Optional[str] = FALLBACK_DEVICE) -> str:
        """Resolve *preferred* to a device the Core can compile for."""
        wanted = (preferred or FALLBACK_DEVICE).strip()

        if wanted.upper() == AUTO_DEVICE:
            if self._core is None:
                logger.warning("AUTO needs openvino; using %s", FALLBACK_DEVICE)
                return FALLBACK_DEVICE
            return AUTO_DEVICE

        if wanted in self._devices:
            logger.info("Detection device: %s", wanted)
            return wanted

        if wanted != FALLBACK_DEVICE:
            logger.warning(
                "Device '%s' unavailable (found %s); using %s",
                wanted, self._devices, FALLBACK_DEVICE,
            )
        return FALLBACK_DEVICE

    def select_for(self, use_gpu: bool, device: str = FALLBACK_DEVICE) -> str:
        """Apply the ``use_gpu`` / ``device`` model settings."""
        return self.select("GPU" if use_gpu else device)

    def device_properties(self, device: str) -> Dict[str, str]:
        """Readable properties of *device*; unsupported keys are left out."""
        if self._core is None:
            return {"error": "OpenVINO not installed"}
        props: Dict[str, str] = {}
        for key in REPORTED_PROPERTIES:
            try:
                props[key] = str(self._core.get_property(device, key))
            except RuntimeError:
                logger.debug("%s does not report %s", device, key)
        return props
