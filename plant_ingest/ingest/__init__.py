from .currency import CurrencyEnforcer, EnforcementResult
from .device_registrar import DeviceRegistrar
from .pipeline import PipelineOutcome, TelemetryPipeline
from .reading_upserter import ReadingUpserter, UpsertResult, make_reading_key

__all__ = [
    "CurrencyEnforcer",
    "EnforcementResult",
    "DeviceRegistrar",
    "PipelineOutcome",
    "TelemetryPipeline",
    "ReadingUpserter",
    "UpsertResult",
    "make_reading_key",
]
