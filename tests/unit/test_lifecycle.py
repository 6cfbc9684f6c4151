"""
Unit tests for the application state machine.

Tests cover:
  - The transition table (reachable and unreachable targets)
  - Actor permissions per target
  - Guards: mandatory documents, interview gating, rejection reason
  - Effects: history entry, timestamps, fee reassessment
  - Edit / delete / access guards
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from evisa_lifecycle.domain.lifecycle import (
    TRANSITIONS,
    TransitionRequest,
    apply_transition,
    ensure_admin,
    ensure_deletable,
    ensure_editable,
    ensure_owner,
    ensure_owner_or_admin,
)
from evisa_lifecycle.domain.models import (
    Application,
    ApplicationStatus,
    DocumentType,
    InterviewInfo,
    ProcessingTier,
)
from evisa_lifecycle.railway import ErrorCode, ResultAssertions
from tests.support import ADMIN, APPLICANT, NOW, OTHER_APPLICANT, World

S = ApplicationStatus


def _with_status(app: Application, status: ApplicationStatus) -> Application:
    return app.model_copy(update={"status": status})


def _needs_interview(app: Application) -> Application:
    return app.model_copy(
        update={"visa_type": app.visa_type.model_copy(update={"interview_required": True})}
    )


class TestTransitionTable:
    def test_terminal_states_have_no_targets(self) -> None:
        for status in (S.APPROVED, S.REJECTED, S.CANCELLED):
            assert TRANSITIONS[status] == frozenset()

    def test_every_non_terminal_state_can_cancel(self) -> None:
        for status, targets in TRANSITIONS.items():
            if targets:
                assert S.CANCELLED in targets

    def test_unlisted_transition_refused_with_allowed(self, tourist_world: World) -> None:
        app = tourist_world.complete_draft()
        result = apply_transition(app, TransitionRequest(S.APPROVED, ADMIN), NOW)
        ResultAssertions.assert_failure(result, ErrorCode.INVALID_TRANSITION)
        ResultAssertions.assert_failure_detail(result, "allowed", ["cancelled", "submitted"])

    def test_terminal_application_refuses_everything(self, tourist_world: World) -> None:
        app = _with_status(tourist_world.draft(), S.REJECTED)
        result = apply_transition(app, TransitionRequest(S.CANCELLED, APPLICANT), NOW)
        ResultAssertions.assert_failure_message_contains(result, "no further transitions")


class TestActorPermissions:
    def test_only_owner_submits(self, tourist_world: World) -> None:
        app = tourist_world.complete_draft()
        for actor in (ADMIN, OTHER_APPLICANT):
            result = apply_transition(app, TransitionRequest(S.SUBMITTED, actor), NOW)
            ResultAssertions.assert_failure(result, ErrorCode.FORBIDDEN)

    def test_applicant_cannot_start_review(self, tourist_world: World) -> None:
        app = tourist_world.submitted()
        result = apply_transition(app, TransitionRequest(S.UNDER_REVIEW, APPLICANT), NOW)
        ResultAssertions.assert_failure(result, ErrorCode.FORBIDDEN)

    @pytest.mark.parametrize("actor", [APPLICANT, ADMIN])
    def test_owner_or_admin_cancels(self, tourist_world: World, actor) -> None:
        app = tourist_world.draft()
        result = apply_transition(app, TransitionRequest(S.CANCELLED, actor), NOW)
        assert ResultAssertions.assert_success(result).status is S.CANCELLED

    def test_stranger_cannot_cancel(self, tourist_world: World) -> None:
        app = tourist_world.draft()
        result = apply_transition(app, TransitionRequest(S.CANCELLED, OTHER_APPLICANT), NOW)
        ResultAssertions.assert_failure(result, ErrorCode.FORBIDDEN)

    def test_owner_returns_application_to_review(self, tourist_world: World) -> None:
        app = _with_status(tourist_world.under_review(), S.ADDITIONAL_DOCS_REQUIRED)
        result = apply_transition(app, TransitionRequest(S.UNDER_REVIEW, APPLICANT), NOW)
        assert ResultAssertions.assert_success(result).status is S.UNDER_REVIEW


class TestGuards:
    def test_submission_lists_missing_documents(self, tourist_world: World) -> None:
        """
        GIVEN a draft with passport copy and photo but no bank statement
        WHEN the owner submits it
        THEN the transition is refused naming the missing bank statement.
        """
        app = tourist_world.attach(
            tourist_world.draft(), (DocumentType.PASSPORT_COPY, DocumentType.PHOTO)
        )
        result = apply_transition(app, TransitionRequest(S.SUBMITTED, APPLICANT), NOW)
        ResultAssertions.assert_failure(result, ErrorCode.INVALID_TRANSITION)
        ResultAssertions.assert_failure_detail(result, "missing", ["bank_statement"])

    def test_direct_approval_refused_when_interview_required(self, tourist_world: World) -> None:
        app = _needs_interview(tourist_world.under_review())
        result = apply_transition(app, TransitionRequest(S.APPROVED, ADMIN), NOW)
        ResultAssertions.assert_failure_message_contains(result, "requires an interview")

    def test_approval_after_interview(self, tourist_world: World) -> None:
        app = _needs_interview(tourist_world.under_review())
        interview = InterviewInfo(scheduled_at=NOW + timedelta(days=2), location="Embassy")
        scheduled = ResultAssertions.assert_success(
            apply_transition(app, TransitionRequest(S.INTERVIEW_SCHEDULED, ADMIN, interview=interview), NOW)
        )
        assert scheduled.interview == interview
        approved = ResultAssertions.assert_success(
            apply_transition(scheduled, TransitionRequest(S.APPROVED, ADMIN), NOW)
        )
        assert approved.approved_at == NOW

    def test_direct_approval_without_interview_requirement(self, tourist_world: World) -> None:
        app = tourist_world.under_review()
        result = apply_transition(app, TransitionRequest(S.APPROVED, ADMIN), NOW)
        assert ResultAssertions.assert_success(result).status is S.APPROVED

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_rejection_requires_reason(self, tourist_world: World, reason: str | None) -> None:
        app = tourist_world.under_review()
        result = apply_transition(app, TransitionRequest(S.REJECTED, ADMIN, reason=reason), NOW)
        ResultAssertions.assert_failure_detail(result, "field", "reason")

    def test_rejection_records_reason(self, tourist_world: World) -> None:
        app = tourist_world.under_review()
        result = apply_transition(
            app, TransitionRequest(S.REJECTED, ADMIN, reason="Insufficient funds"), NOW
        )
        rejected = ResultAssertions.assert_success(result)
        assert rejected.rejection_reason == "Insufficient funds"
        assert rejected.rejected_at == NOW
        assert rejected.status_history[-1].notes == "Insufficient funds"


class TestEffects:
    def test_each_transition_appends_one_history_entry(self, tourist_world: World) -> None:
        app = tourist_world.complete_draft()
        result = apply_transition(app, TransitionRequest(S.SUBMITTED, APPLICANT, note="go"), NOW)
        submitted = ResultAssertions.assert_success(result)
        assert len(submitted.status_history) == len(app.status_history) + 1
        entry = submitted.status_history[-1]
        assert (entry.status, entry.changed_by, entry.notes) == (S.SUBMITTED, APPLICANT.id, "go")
        assert submitted.submitted_at == NOW

    def test_processed_at_set_on_first_review_only(self, tourist_world: World) -> None:
        """
        GIVEN an application that has already been under review once
        WHEN it re-enters review after additional documents
        THEN processed_at keeps the first review timestamp.
        """
        first = tourist_world.under_review()
        assert first.processed_at == NOW
        later = NOW + timedelta(days=4)
        waiting = ResultAssertions.assert_success(
            apply_transition(first, TransitionRequest(S.ADDITIONAL_DOCS_REQUIRED, ADMIN), later)
        )
        back = ResultAssertions.assert_success(
            apply_transition(waiting, TransitionRequest(S.UNDER_REVIEW, APPLICANT), later)
        )
        assert back.processed_at == NOW

    def test_submission_reassesses_fee_for_tier(self, tourist_world: World) -> None:
        app = tourist_world.complete_draft().model_copy(update={"tier": ProcessingTier.URGENT})
        submitted = ResultAssertions.assert_success(
            apply_transition(app, TransitionRequest(S.SUBMITTED, APPLICANT), NOW)
        )
        assert submitted.fee.amount == Decimal("90.00")
        assert submitted.expected_processing_days == 5

    def test_input_application_unchanged(self, tourist_world: World) -> None:
        app = tourist_world.complete_draft()
        apply_transition(app, TransitionRequest(S.SUBMITTED, APPLICANT), NOW)
        assert app.status is S.DRAFT


class TestMutationGuards:
    def test_editable_states(self, tourist_world: World) -> None:
        app = tourist_world.draft()
        ResultAssertions.assert_success(ensure_editable(app))
        ResultAssertions.assert_success(ensure_editable(_with_status(app, S.ADDITIONAL_DOCS_REQUIRED)))
        ResultAssertions.assert_failure(ensure_editable(_with_status(app, S.APPROVED)), ErrorCode.INVALID_TRANSITION)

    @pytest.mark.parametrize("status", list(ApplicationStatus))
    def test_editable_guard_follows_status(self, tourist_world: World, status: ApplicationStatus) -> None:
        """
        GIVEN an application in any status
        WHEN the edit guard runs
        THEN it returns a Result matching the application's editability and never raises.
        """
        app = _with_status(tourist_world.draft(), status)
        result = ensure_editable(app)
        assert result.is_success() is app.is_editable
        assert result.is_success() is (status in (S.DRAFT, S.ADDITIONAL_DOCS_REQUIRED))

    def test_only_drafts_are_deletable(self, tourist_world: World) -> None:
        app = tourist_world.draft()
        ResultAssertions.assert_success(ensure_deletable(app))
        ResultAssertions.assert_failure(ensure_deletable(_with_status(app, S.SUBMITTED)), ErrorCode.INVALID_TRANSITION)

    def test_access_guards(self, tourist_world: World) -> None:
        app = tourist_world.draft()
        ResultAssertions.assert_success(ensure_owner_or_admin(app, ADMIN))
        ResultAssertions.assert_failure(ensure_owner_or_admin(app, OTHER_APPLICANT), ErrorCode.FORBIDDEN)
        ResultAssertions.assert_failure(ensure_owner(app, ADMIN), ErrorCode.FORBIDDEN)
        ResultAssertions.assert_failure(ensure_admin(APPLICANT, "verify documents"), ErrorCode.FORBIDDEN)
