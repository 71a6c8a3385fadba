"""
Deterministic placeholder outcomes used when the provider is unreachable and
the policy runs in simulation mode.
"""

import re

from config import validation_config
from models import (
    IdentifierType,
    NormalizedRecord,
    OutcomeSource,
    VerificationOutcome,
    VerificationStatus,
)


def simulate_outcome(record: NormalizedRecord) -> VerificationOutcome:
    """
    Build a placeholder outcome for a record.

    The result depends only on the record: a malformed identifier is
    ``invalid``, anything else is ``verified`` with both match flags set.
    """
    if record.identifier_type == IdentifierType.AADHAAR:
        pattern = validation_config.aadhaar_pattern
        identifier = record.identifier_primary.replace(" ", "")
    else:
        pattern = validation_config.pan_pattern
        identifier = record.identifier_primary.strip().upper()

    valid = re.match(pattern, identifier) is not None
    status = VerificationStatus.VERIFIED if valid else VerificationStatus.INVALID

    return VerificationOutcome(
        row_number=record.row_number,
        status=status,
        source=OutcomeSource.FALLBACK_SIMULATION,
        raw_provider_response={
            "simulated": True,
            "status": "valid" if valid else "invalid",
            "identifier_type": record.identifier_type.value,
        },
        name_match=valid,
        dob_match=valid if record.date_of_birth else None,
        remarks="Simulated result; provider unavailable",
    )
