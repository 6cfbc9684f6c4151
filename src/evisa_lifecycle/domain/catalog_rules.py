"""
Tier resolution for fees and processing times.

Urgent and express values are optional on a visa type; when a tier-specific
value is absent the standard value applies. The fallback is explicit here
rather than left to `or` chains at call sites.
"""

from __future__ import annotations

from evisa_lifecycle.domain.models import (
    FeeAssessment,
    Money,
    ProcessingTier,
    VisaTypeDefinition,
)


def resolve_fee(visa_type: VisaTypeDefinition, tier: ProcessingTier) -> Money:
    fees = visa_type.fees
    match tier:
        case ProcessingTier.URGENT if fees.urgent is not None:
            return fees.urgent
        case ProcessingTier.EXPRESS if fees.express is not None:
            return fees.express
    return fees.standard


def resolve_processing_days(visa_type: VisaTypeDefinition, tier: ProcessingTier) -> int:
    processing = visa_type.processing
    match tier:
        case ProcessingTier.URGENT if processing.urgent_days is not None:
            return processing.urgent_days
        case ProcessingTier.EXPRESS if processing.express_days is not None:
            return processing.express_days
    return processing.standard_days


def assess_fee(visa_type: VisaTypeDefinition, tier: ProcessingTier) -> FeeAssessment:
    fee = resolve_fee(visa_type, tier)
    return FeeAssessment(
        tier=tier,
        amount=fee.amount,
        currency=fee.currency,
        service_fee=visa_type.fees.service_fee,
    )
