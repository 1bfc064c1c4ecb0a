from datetime import datetime, timezone

import pytest

from app.core.errors import (
    AttachmentUploadError,
    ConflictError,
    IllegalTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.models.issue import IssuePriority, IssueStatus
from app.schemas.issue import (
    COMMENT_MAX,
    ESCALATED_TO_MAX,
    HISTORY_COMMENT_MAX,
    REASON_MAX,
    REFERENCE_ID_MAX,
    AssignmentPatch,
)
from app.services.lifecycle import ALLOWED_TRANSITIONS, REPORTED_COMMENT, Attachment, IssueLifecycle


def _walk_to(lifecycle, admin, issue_id, *statuses):
    for s in statuses:
        lifecycle.transition(admin, issue_id, s)
    return lifecycle.get(issue_id)


class TestCreate:
    def test_new_issue_starts_reported(self, report, clock, citizen):
        issue = report()
        assert issue.id
        assert issue.status == IssueStatus.reported
        assert issue.upvotes == 0
        assert issue.notes == []
        assert issue.reported_by == citizen.id
        assert issue.reporter_name == citizen.name
        assert issue.created_at == clock.now
        assert issue.updated_at == issue.created_at
        assert len(issue.history) == 1
        first = issue.history[0]
        assert first.status == IssueStatus.reported
        assert first.updated_by == citizen.name
        assert first.timestamp == clock.now
        assert first.comment == REPORTED_COMMENT

    def test_priority_is_classified_from_category_and_description(self, report):
        assert report().priority == IssuePriority.low
        assert report(category="Electricity", description="Pole is leaning").priority == IssuePriority.high
        assert report(description="Exposed wire hanging low").priority == IssuePriority.high

    def test_fields_are_trimmed(self, report):
        issue = report(title="  Pothole  ", description="  Deep one ")
        assert issue.title == "Pothole"
        assert issue.description == "Deep one"

    @pytest.mark.parametrize("overrides", [
        {"title": ""},
        {"title": "   "},
        {"title": "x" * 201},
        {"description": "d" * 4001},
        {"description": ""},
        {"category": ""},
        {"category": "Potholes"},
        {"latitude": 91.0},
        {"longitude": -181.0},
        {"latitude": None},
    ])
    def test_invalid_input_is_rejected_and_nothing_stored(self, report, registry, overrides):
        with pytest.raises(ValidationError):
            report(**overrides)
        assert registry.count() == 0

    def test_image_is_uploaded_before_the_issue_is_stored(self, report, uploads):
        image = Attachment(data=b"\x89PNG" + b"0" * 64, content_type="image/png", filename="hole.PNG")
        issue = report(image=image)
        assert len(uploads) == 1
        path, content_type, size = uploads[0]
        assert path.startswith("issues/") and path.endswith(".png")
        assert content_type == "image/png"
        assert size == 68
        assert issue.image_url == f"https://cdn.example.test/{path}"

    @pytest.mark.parametrize("image", [
        Attachment(data=b"abc", content_type="application/pdf", filename="doc.pdf"),
        Attachment(data=b"", content_type="image/jpeg", filename="empty.jpg"),
        Attachment(data=b"0" * (2 * 1024 * 1024 + 1), content_type="image/jpeg", filename="big.jpg"),
    ])
    def test_bad_images_are_rejected(self, report, registry, uploads, image):
        with pytest.raises(ValidationError):
            report(image=image)
        assert uploads == []
        assert registry.count() == 0

    def test_failed_upload_stores_nothing(self, registry, clock, citizen):
        def broken_upload(data, content_type, path):
            raise AttachmentUploadError("storage is down")

        lifecycle = IssueLifecycle(registry, clock=clock, uploader=broken_upload)
        with pytest.raises(AttachmentUploadError):
            lifecycle.create(
                citizen,
                title="Streetlight out",
                description="Dark lane",
                category="Street Lights",
                latitude=12.97,
                longitude=77.59,
                image=Attachment(data=b"img", content_type="image/jpeg"),
            )
        assert registry.count() == 0


class TestTransition:
    def test_transition_appends_history(self, report, lifecycle, admin, clock):
        issue = report()
        clock.advance(hours=2)
        updated = lifecycle.transition(admin, issue.id, "acknowledged", comment="Looking into it")

        assert updated.status == IssueStatus.acknowledged
        assert updated.updated_at == clock.now
        assert updated.created_at == issue.created_at
        assert len(updated.history) == 2
        assert updated.history[0] == issue.history[0]
        last = updated.history[-1]
        assert last.status == IssueStatus.acknowledged
        assert last.updated_by == admin.name
        assert last.timestamp == clock.now
        assert last.comment == "Looking into it"

    def test_full_happy_path(self, report, lifecycle, admin, clock):
        issue = report()
        for status in ("acknowledged", "verified", "in-progress", "resolved"):
            clock.advance(minutes=5)
            issue = lifecycle.transition(admin, issue.id, status)
        assert issue.status == IssueStatus.resolved
        assert [h.status.value for h in issue.history] == [
            "reported", "acknowledged", "verified", "in-progress", "resolved",
        ]
        stamps = [h.timestamp for h in issue.history]
        assert stamps == sorted(stamps)

    def test_assignment_patch_only_touches_set_fields(self, report, lifecycle, admin):
        issue = report()
        lifecycle.transition(
            admin, issue.id, "acknowledged",
            assignment=AssignmentPatch(assigned_department="Roads Dept", assigned_officer_id="off-7"),
        )
        updated = lifecycle.transition(
            admin, issue.id, "verified",
            assignment=AssignmentPatch(resolution_notes="Crew dispatched"),
        )
        assert updated.assigned_department == "Roads Dept"
        assert updated.assigned_officer_id == "off-7"
        assert updated.resolution_notes == "Crew dispatched"
        assert updated.sla_deadline is None

    def test_sla_deadline_is_stored_as_utc(self, report, lifecycle, admin):
        issue = report()
        deadline = datetime(2026, 3, 4, 9, 0, tzinfo=timezone.utc)
        updated = lifecycle.transition(
            admin, issue.id, "acknowledged", assignment=AssignmentPatch(sla_deadline=deadline)
        )
        assert updated.sla_deadline == deadline
        assert updated.sla_deadline.tzinfo is not None

    def test_priority_never_changes_after_creation(self, report, lifecycle, admin):
        issue = report(description="Fire in the transformer box")
        updated = _walk_to(lifecycle, admin, issue.id, "acknowledged", "verified")
        assert updated.priority == issue.priority == IssuePriority.high

    def test_citizen_cannot_transition(self, report, lifecycle, citizen):
        issue = report()
        with pytest.raises(PermissionDeniedError):
            lifecycle.transition(citizen, issue.id, "acknowledged")
        assert lifecycle.get(issue.id).status == IssueStatus.reported

    def test_unknown_issue(self, lifecycle, admin):
        with pytest.raises(NotFoundError):
            lifecycle.transition(admin, "does-not-exist", "acknowledged")

    def test_unknown_status(self, report, lifecycle, admin):
        issue = report()
        with pytest.raises(ValidationError):
            lifecycle.transition(admin, issue.id, "closed")

    @pytest.mark.parametrize("path,target", [
        ((), "resolved"),
        ((), "in-progress"),
        ((), "reported"),
        (("acknowledged",), "rejected"),
        (("acknowledged", "verified", "in-progress", "resolved"), "in-progress"),
        (("rejected",), "acknowledged"),
    ])
    def test_illegal_transitions_leave_the_issue_alone(self, report, lifecycle, admin, path, target):
        issue = report()
        before = _walk_to(lifecycle, admin, issue.id, *path)
        with pytest.raises(IllegalTransitionError):
            lifecycle.transition(admin, issue.id, target)
        assert lifecycle.get(issue.id) == before

    def test_escalation_needs_the_escalate_operation(self, report, lifecycle, admin):
        issue = report()
        with pytest.raises(ValidationError):
            lifecycle.transition(admin, issue.id, "escalated")

    def test_permissive_mode_allows_any_move(self, report, registry, clock, admin):
        issue = report()
        loose = IssueLifecycle(registry, strict_transitions=False, clock=clock)
        resolved = loose.transition(admin, issue.id, "resolved")
        reopened = loose.transition(admin, issue.id, "reported")
        assert resolved.status == IssueStatus.resolved
        assert reopened.status == IssueStatus.reported
        assert len(reopened.history) == 3

    def test_terminal_statuses_have_no_exits(self):
        for status in (IssueStatus.resolved, IssueStatus.rejected, IssueStatus.escalated):
            assert ALLOWED_TRANSITIONS[status] == frozenset()
        assert set(ALLOWED_TRANSITIONS) == set(IssueStatus)

    def test_updated_at_never_precedes_created_at(self, report, lifecycle, admin, clock):
        issue = report()
        clock.advance(hours=-3)
        updated = lifecycle.transition(admin, issue.id, "acknowledged")
        assert updated.updated_at == issue.created_at


class TestConcurrency:
    def test_expected_version_mismatch(self, report, lifecycle, admin):
        issue = report()
        with pytest.raises(ConflictError):
            lifecycle.transition(admin, issue.id, "acknowledged", expected_version=issue.version + 5)
        assert lifecycle.get(issue.id).status == IssueStatus.reported

    def test_stale_reader_loses(self, report, lifecycle, admin):
        issue = report()
        lifecycle.transition(admin, issue.id, "acknowledged", expected_version=issue.version)
        with pytest.raises(ConflictError):
            lifecycle.transition(admin, issue.id, "verified", expected_version=issue.version)
        current = lifecycle.get(issue.id)
        assert current.status == IssueStatus.acknowledged
        assert len(current.history) == 2

    def test_every_write_bumps_the_version(self, report, lifecycle, admin):
        issue = report()
        updated = lifecycle.transition(admin, issue.id, "acknowledged")
        assert updated.version == issue.version + 1


class TestEscalate:
    def test_escalate_records_details(self, report, lifecycle, admin, clock):
        issue = report()
        clock.advance(days=1)
        updated = lifecycle.escalate(
            admin, issue.id, escalated_to="District Collector", reason="No response for 24h",
            reference_id="DC-2026-114",
        )
        assert updated.status == IssueStatus.escalated
        details = updated.escalation_details
        assert details.escalated_to == "District Collector"
        assert details.reason == "No response for 24h"
        assert details.reference_id == "DC-2026-114"
        assert details.escalated_at == clock.now
        last = updated.history[-1]
        assert last.status == IssueStatus.escalated
        assert last.comment == "Escalated to District Collector: No response for 24h"

    def test_escalated_is_terminal(self, report, lifecycle, admin):
        issue = report()
        lifecycle.escalate(admin, issue.id, escalated_to="Ward Office", reason="Unattended")
        with pytest.raises(IllegalTransitionError):
            lifecycle.transition(admin, issue.id, "acknowledged")

    def test_cannot_escalate_resolved_issue(self, report, lifecycle, admin):
        issue = report()
        _walk_to(lifecycle, admin, issue.id, "acknowledged", "verified", "in-progress", "resolved")
        with pytest.raises(IllegalTransitionError):
            lifecycle.escalate(admin, issue.id, escalated_to="Ward Office", reason="Late")

    @pytest.mark.parametrize("to,reason", [("", "why"), ("Ward Office", "  ")])
    def test_target_and_reason_are_required(self, report, lifecycle, admin, to, reason):
        issue = report()
        with pytest.raises(ValidationError):
            lifecycle.escalate(admin, issue.id, escalated_to=to, reason=reason)

    def test_citizen_cannot_escalate(self, report, lifecycle, citizen):
        issue = report()
        with pytest.raises(PermissionDeniedError):
            lifecycle.escalate(citizen, issue.id, escalated_to="Ward Office", reason="Slow")


class TestNotesAndUpvotes:
    def test_note_does_not_touch_status_or_history(self, report, lifecycle, admin, clock):
        issue = report()
        clock.advance(minutes=30)
        note = lifecycle.add_note(admin, issue.id, "Called the contractor")
        assert note.author == admin.name
        assert note.content == "Called the contractor"
        assert note.timestamp == clock.now

        updated = lifecycle.get(issue.id)
        assert updated.status == issue.status
        assert updated.history == issue.history
        assert [n.id for n in updated.notes] == [note.id]
        assert updated.updated_at == clock.now

    def test_notes_keep_their_order(self, report, lifecycle, admin):
        issue = report()
        for text in ("first", "second", "third"):
            lifecycle.add_note(admin, issue.id, text)
        assert [n.content for n in lifecycle.get(issue.id).notes] == ["first", "second", "third"]

    def test_empty_note_rejected(self, report, lifecycle, admin):
        issue = report()
        with pytest.raises(ValidationError):
            lifecycle.add_note(admin, issue.id, "   ")

    def test_citizen_cannot_add_notes(self, report, lifecycle, citizen):
        issue = report()
        with pytest.raises(PermissionDeniedError):
            lifecycle.add_note(citizen, issue.id, "hello")

    def test_upvote_counts_only(self, report, lifecycle, other_citizen, clock):
        issue = report()
        clock.advance(hours=1)
        lifecycle.upvote(other_citizen, issue.id)
        updated = lifecycle.upvote(other_citizen, issue.id)
        assert updated.upvotes == 2
        assert updated.updated_at == issue.updated_at
        assert updated.history == issue.history

    def test_upvote_unknown_issue(self, lifecycle, citizen):
        with pytest.raises(NotFoundError):
            lifecycle.upvote(citizen, "missing")


class TestInputLimits:
    def test_longest_escalation_fits_the_history_comment(self, report, lifecycle, admin):
        issue = report()
        updated = lifecycle.escalate(
            admin, issue.id, escalated_to="W" * ESCALATED_TO_MAX, reason="r" * REASON_MAX,
            reference_id="R" * REFERENCE_ID_MAX,
        )
        comment = updated.history[-1].comment
        assert len(comment) == len("Escalated to ") + ESCALATED_TO_MAX + len(": ") + REASON_MAX
        assert len(comment) <= HISTORY_COMMENT_MAX

    @pytest.mark.parametrize("field,value", [
        ("escalated_to", "W" * (ESCALATED_TO_MAX + 1)),
        ("reason", "r" * (REASON_MAX + 1)),
        ("reference_id", "R" * (REFERENCE_ID_MAX + 1)),
    ])
    def test_over_long_escalation_input(self, report, lifecycle, admin, field, value):
        issue = report()
        args = {"escalated_to": "Ward Office", "reason": "Unattended", "reference_id": None}
        args[field] = value
        with pytest.raises(ValidationError):
            lifecycle.escalate(admin, issue.id, **args)
        assert lifecycle.get(issue.id).status == IssueStatus.reported

    def test_over_long_comment(self, report, lifecycle, admin):
        issue = report()
        with pytest.raises(ValidationError):
            lifecycle.transition(admin, issue.id, "acknowledged", comment="c" * (COMMENT_MAX + 1))
        assert len(lifecycle.get(issue.id).history) == 1

    def test_over_long_note(self, report, lifecycle, admin):
        issue = report()
        with pytest.raises(ValidationError):
            lifecycle.add_note(admin, issue.id, "n" * 4001)


class TestUpvoteConcurrency:
    def test_upvote_leaves_the_version_alone(self, report, lifecycle, other_citizen):
        issue = report()
        updated = lifecycle.upvote(other_citizen, issue.id)
        assert updated.version == issue.version

    def test_upvote_does_not_invalidate_a_pending_status_change(self, report, lifecycle, admin, other_citizen):
        issue = report()
        lifecycle.upvote(other_citizen, issue.id)
        updated = lifecycle.transition(admin, issue.id, "acknowledged", expected_version=issue.version)
        assert updated.status == IssueStatus.acknowledged
        assert updated.upvotes == 1
