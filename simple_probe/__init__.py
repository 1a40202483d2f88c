"""Simple Probe - GRBL probe sequencing engine.

Drives touch plate, BitSetter, BitZero, manual and custom-macro zeroing
routines over an injected line transport and decides when each run has
completed, failed or hung.
"""

__version__ = "1.0"
__author__ = "Bob Kolbasowski"

from .calibration import CalibrationStoreAdapter, JsonCalibrationStore, MemoryCalibrationStore
from .controller import ProbeController
from .methods import (
    BitSetterMethod,
    BitZeroMethod,
    CustomMethod,
    ManualMethod,
    TouchPlateMethod,
    ZeroingMethod,
    method_from_dict,
    total_steps,
)
from .scheduling import ManualScheduler, ThreadedScheduler
from .sequence_builder import BuildContext, build_sequence
from .session import ProbeSession, SessionStatus, StatusSnapshot
from .types import Position, PositionSnapshot
from .utils import EngineConfig, Settings

__all__ = [
    "BitSetterMethod",
    "BitZeroMethod",
    "BuildContext",
    "CalibrationStoreAdapter",
    "CustomMethod",
    "EngineConfig",
    "JsonCalibrationStore",
    "ManualMethod",
    "ManualScheduler",
    "MemoryCalibrationStore",
    "Position",
    "PositionSnapshot",
    "ProbeController",
    "ProbeSession",
    "SessionStatus",
    "Settings",
    "StatusSnapshot",
    "ThreadedScheduler",
    "TouchPlateMethod",
    "ZeroingMethod",
    "build_sequence",
    "method_from_dict",
    "total_steps",
]
