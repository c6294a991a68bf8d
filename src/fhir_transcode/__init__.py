"""
fhir-transcode: typed FHIR R4 MedicationRequest transcoding.

Turns semi-structured FHIR JSON into an immutable, typed resource graph
and back, resolving choice types, normalizing references, and
validating dateTime values along the way.
"""

__version__ = "0.3.1"

from fhir_transcode.config import ServerConfig, get_server_config
from fhir_transcode.report import Diagnostic, TranscodeReport
from fhir_transcode.r4 import (
    MedicationRequest,
    deserialize,
    serialize,
    from_fhir,
    to_fhir,
    InvalidInput,
    TranscodeError,
)

__all__ = [
    "__version__",
    "ServerConfig",
    "get_server_config",
    "Diagnostic",
    "TranscodeReport",
    "MedicationRequest",
    "deserialize",
    "serialize",
    "from_fhir",
    "to_fhir",
    "InvalidInput",
    "TranscodeError",
]
