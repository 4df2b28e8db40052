"""Calibration for LineSentry."""

from linesentry.services.calibration.engine import CalibrationEngine, CalibrationReport
from linesentry.services.calibration.ledger import CalibrationLedger
from linesentry.services.calibration.locks import calibration_lock
from linesentry.services.calibration.metrics import CalibrationParams

__all__ = [
    "CalibrationEngine",
    "CalibrationLedger",
    "CalibrationParams",
    "CalibrationReport",
    "calibration_lock",
]
