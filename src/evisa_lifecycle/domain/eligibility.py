"""
Eligibility resolution — pure checks of an applicant against a visa type.

Both functions are deterministic for a given visa-type snapshot and have no
side effects. Two different notions of "documents complete" coexist:

  * `check_document_completeness` — the visa type's own mandatory list,
    used to tell an applicant what is still missing.
  * `submission_missing_documents` — the submission guard, which falls back
    to the default trio (passport copy, photo, bank statement) when the
    snapshot lists no mandatory documents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from evisa_lifecycle.domain.applicant import PersonalInfo, age_on
from evisa_lifecycle.domain.models import Application, DocumentType, VisaTypeDefinition


@dataclass(frozen=True, slots=True)
class ApplicantProfile:
    """The parts of an applicant eligibility depends on."""

    nationality: str
    age: int | None = None

    @staticmethod
    def from_personal_info(personal: PersonalInfo, as_of: date) -> ApplicantProfile:
        return ApplicantProfile(
            nationality=personal.nationality,
            age=age_on(personal.date_of_birth, as_of),
        )


@dataclass(frozen=True, slots=True)
class EligibilityResult:
    eligible: bool
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class DocumentCompleteness:
    complete: bool
    missing: tuple[DocumentType, ...] = field(default=())


def is_nationality_eligible(nationality: str, visa_type: VisaTypeDefinition) -> bool:
    rules = visa_type.eligibility
    normalized = nationality.strip().upper()
    if normalized in rules.excluded_nationalities:
        return False
    return not rules.allowed_nationalities or normalized in rules.allowed_nationalities


def check_eligibility(applicant: ApplicantProfile, visa_type: VisaTypeDefinition) -> EligibilityResult:
    """Nationality and age checks; every failed rule contributes a reason."""
    rules = visa_type.eligibility
    reasons: list[str] = []

    if not is_nationality_eligible(applicant.nationality, visa_type):
        reasons.append(
            f"nationality {applicant.nationality.strip().upper()} is not eligible for visa type {visa_type.code}"
        )

    has_bounds = rules.min_age is not None or rules.max_age is not None
    if has_bounds and applicant.age is None:
        reasons.append("applicant age is required for this visa type")
    elif applicant.age is not None:
        if rules.min_age is not None and applicant.age < rules.min_age:
            reasons.append(f"applicant age {applicant.age} is below the minimum age {rules.min_age}")
        if rules.max_age is not None and applicant.age > rules.max_age:
            reasons.append(f"applicant age {applicant.age} is above the maximum age {rules.max_age}")

    return EligibilityResult(eligible=not reasons, reasons=tuple(reasons))


def _missing(required: tuple[DocumentType, ...], application: Application) -> tuple[DocumentType, ...]:
    attached = application.attached_types()
    return tuple(doc_type for doc_type in required if doc_type not in attached)


def check_document_completeness(application: Application) -> DocumentCompleteness:
    missing = _missing(application.visa_type.mandatory_document_types(), application)
    return DocumentCompleteness(complete=not missing, missing=missing)


def submission_missing_documents(application: Application) -> tuple[DocumentType, ...]:
    return _missing(application.resolved_mandatory_documents(), application)
