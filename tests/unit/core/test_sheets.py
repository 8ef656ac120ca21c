"""Tests for the sheet store, row approval tracker and sheet coordinator."""

import re
from datetime import date

import pytest

from approvalflow.core.errors import (
    AlreadyApprovedError,
    IncompleteApprovalError,
    RowNotFoundError,
    RowValidationError,
    SheetNotFoundError,
    TransitionError,
)
from approvalflow.core.sheets import (
    SheetStore,
    RowApprovalTracker,
    SheetApprovalCoordinator,
    validate_rows,
    row_to_dict,
)
from approvalflow.db.models import ItemStaging, Sheet, SheetStatus, RowStatus

from tests.factories import create_process, create_sheet, row_data

pytestmark = pytest.mark.db


class TestValidateRows:
    def test_valid_rows_are_normalized(self, sample_rows):
        rows = validate_rows("item", sample_rows["item"])
        assert len(rows) == 2
        assert rows[0]["item_name"] == "Hospital Cash"
        assert rows[0]["effective_date"] == date(2026, 1, 1)

    def test_camel_case_keys_accepted(self):
        rows = validate_rows("plan", [{
            "planName": "Basic", "planType": "GROUP", "premium": 10,
            "coverageAmount": 1000, "effectiveDate": "2026-05-01",
        }])
        assert rows[0]["coverage_amount"] == 1000

    def test_empty_submission_rejected(self):
        with pytest.raises(RowValidationError):
            validate_rows("product", [])

    def test_errors_reported_per_row(self, sample_rows):
        bad = dict(sample_rows["item"][0], price=-1)
        missing = {"item_name": "No category"}
        with pytest.raises(RowValidationError) as exc_info:
            validate_rows("item", [sample_rows["item"][1], bad, missing])

        errors = exc_info.value.errors
        assert [e["row"] for e in errors] == [1, 2]
        assert any(err["loc"] == ["price"] for err in errors[0]["errors"])

    def test_blank_name_rejected(self, sample_rows):
        with pytest.raises(RowValidationError):
            validate_rows("item", [dict(sample_rows["item"][0], item_name="   ")])

    def test_unknown_entity_type(self):
        with pytest.raises(RowValidationError):
            validate_rows("policy", [{}])


class TestSheetStore:
    def test_sheet_id_format(self, db_session):
        process = create_process(db_session)
        sheet = SheetStore(db_session).get_or_create_sheet(process.id, "item", "maker1")
        assert re.fullmatch(r"SHEET-[0-9A-F]{8}", sheet.sheet_id)
        assert sheet.status == SheetStatus.OPEN

    def test_get_or_create_is_idempotent(self, db_session):
        process = create_process(db_session)
        store = SheetStore(db_session)

        first = store.get_or_create_sheet(process.id, "item", "maker1")
        second = store.get_or_create_sheet(process.id, "item", "maker2")

        assert first.sheet_id == second.sheet_id
        assert db_session.query(Sheet).count() == 1

    def test_one_sheet_per_entity(self, db_session):
        process = create_process(db_session)
        store = SheetStore(db_session)
        item_sheet = store.get_or_create_sheet(process.id, "item", "maker1")
        plan_sheet = store.get_or_create_sheet(process.id, "plan", "maker1")
        assert item_sheet.sheet_id != plan_sheet.sheet_id

    def test_get_sheet_not_found(self, db_session):
        with pytest.raises(SheetNotFoundError):
            SheetStore(db_session).get_sheet("SHEET-00000000")

    def test_replace_rows(self, db_session):
        process = create_process(db_session)
        store = SheetStore(db_session)
        sheet = store.get_or_create_sheet(process.id, "item", "maker1")

        store.replace_rows(sheet, [row_data("item"), row_data("item")], "maker1")
        store.replace_rows(sheet, [row_data("item", item_name="Only")], "maker2")

        rows = store.list_rows(sheet)
        assert len(rows) == 1
        assert rows[0].item_name == "Only"
        assert rows[0].edited_by == "maker2"
        assert rows[0].approved is False

    def test_replace_rows_keeps_approved_rows(self, db_session):
        process = create_process(db_session)
        sheet, rows = create_sheet(db_session, process, "item", row_count=1, rows_approved=True)
        with pytest.raises(AlreadyApprovedError):
            SheetStore(db_session).replace_rows(sheet, [row_data("item")], "maker1")

    def test_mark_sheet_approved_once(self, db_session):
        process = create_process(db_session)
        sheet, _ = create_sheet(db_session, process, "item")
        store = SheetStore(db_session)

        store.mark_sheet_approved(sheet.sheet_id, "checker1")
        assert sheet.status == SheetStatus.APPROVED
        assert sheet.approved_by == "checker1"

        with pytest.raises(AlreadyApprovedError):
            store.mark_sheet_approved(sheet.sheet_id, "checker2")

    def test_reopen_sheet(self, db_session):
        process = create_process(db_session)
        sheet, _ = create_sheet(db_session, process, "plan", row_count=3, rows_approved=True)
        store = SheetStore(db_session)

        successor = store.reopen_sheet(sheet, "checker1", "premiums too low")

        assert sheet.status == SheetStatus.REJECTED
        assert successor.status == SheetStatus.OPEN
        assert successor.comments == "premiums too low"
        new_rows = store.list_rows(successor)
        assert len(new_rows) == 3
        assert all(not r.approved and r.approved_by is None for r in new_rows)
        assert store.find_open_sheet(process.id, "plan").sheet_id == successor.sheet_id

    def test_find_latest_sheet(self, db_session):
        process = create_process(db_session)
        create_sheet(db_session, process, "item", status=SheetStatus.REJECTED)
        newest, _ = create_sheet(db_session, process, "item")
        assert SheetStore(db_session).find_latest_sheet(process.id, "item").sheet_id == newest.sheet_id


class TestRowApprovalTracker:
    def test_approve_row(self, db_session):
        process = create_process(db_session, stage="ITEM_APPROVE")
        sheet, rows = create_sheet(db_session, process, "item")

        row = RowApprovalTracker(db_session).approve_row("item", rows[0].id, "checker1")

        assert row.approved is True
        assert row.approved_by == "checker1"
        assert row.approved_at is not None
        assert row.status == RowStatus.APPROVED

    def test_second_approval_rejected(self, db_session):
        process = create_process(db_session, stage="ITEM_APPROVE")
        _, rows = create_sheet(db_session, process, "item")
        tracker = RowApprovalTracker(db_session)

        tracker.approve_row("item", rows[0].id, "checker1")
        first_approved_at = rows[0].approved_at
        with pytest.raises(AlreadyApprovedError):
            tracker.approve_row("item", rows[0].id, "checker2")

        assert rows[0].approved_by == "checker1"
        assert rows[0].approved_at == first_approved_at

    def test_row_not_found(self, db_session):
        with pytest.raises(RowNotFoundError):
            RowApprovalTracker(db_session).approve_row("item", 999, "checker1")

    def test_rows_of_rejected_sheet_cannot_be_approved(self, db_session):
        process = create_process(db_session)
        _, rows = create_sheet(db_session, process, "item", status=SheetStatus.REJECTED)
        with pytest.raises(TransitionError):
            RowApprovalTracker(db_session).approve_row("item", rows[0].id, "checker1")

    def test_approve_all_rows_shares_timestamp(self, db_session):
        process = create_process(db_session, stage="PLAN_APPROVE")
        sheet, rows = create_sheet(db_session, process, "plan", row_count=3)
        tracker = RowApprovalTracker(db_session)
        tracker.approve_row("plan", rows[0].id, "checker1")

        count = tracker.approve_all_rows(sheet.sheet_id, "checker2")

        assert count == 2
        assert rows[0].approved_by == "checker1"
        assert rows[1].approved_at == rows[2].approved_at
        assert tracker.is_fully_approved(sheet.sheet_id)

    def test_approve_all_rows_nothing_left(self, db_session):
        process = create_process(db_session)
        sheet, _ = create_sheet(db_session, process, "plan", rows_approved=True)
        assert RowApprovalTracker(db_session).approve_all_rows(sheet.sheet_id, "checker1") == 0

    def test_approve_all_rows_empty_sheet(self, db_session):
        process = create_process(db_session)
        sheet, _ = create_sheet(db_session, process, "plan", row_count=0)
        assert RowApprovalTracker(db_session).approve_all_rows(sheet.sheet_id, "checker1") == 0

    def test_is_fully_approved(self, db_session):
        process = create_process(db_session)
        tracker = RowApprovalTracker(db_session)

        empty, _ = create_sheet(db_session, process, "item", row_count=0)
        assert not tracker.is_fully_approved(empty.sheet_id)

        partial, rows = create_sheet(db_session, process, "plan", row_count=2)
        tracker.approve_row("plan", rows[0].id, "checker1")
        assert not tracker.is_fully_approved(partial.sheet_id)


class TestSheetApprovalCoordinator:
    def test_approve_sheet(self, db_session):
        process = create_process(db_session)
        sheet, _ = create_sheet(db_session, process, "item", rows_approved=True)

        approved = SheetApprovalCoordinator(db_session).approve_sheet(sheet.sheet_id, "checker1")

        assert approved.status == SheetStatus.APPROVED
        assert approved.approved_by == "checker1"

    def test_pending_rows_block_sheet_approval(self, db_session):
        process = create_process(db_session)
        sheet, rows = create_sheet(db_session, process, "item", row_count=2)
        RowApprovalTracker(db_session).approve_row("item", rows[0].id, "checker1")

        with pytest.raises(IncompleteApprovalError) as exc_info:
            SheetApprovalCoordinator(db_session).approve_sheet(sheet.sheet_id, "checker1")

        assert exc_info.value.details["pending_rows"] == 1
        assert sheet.approved_at is None
        assert sheet.status == SheetStatus.OPEN

    def test_empty_sheet_cannot_be_approved(self, db_session):
        process = create_process(db_session)
        sheet, _ = create_sheet(db_session, process, "item", row_count=0)
        with pytest.raises(IncompleteApprovalError):
            SheetApprovalCoordinator(db_session).approve_sheet(sheet.sheet_id, "checker1")

    def test_double_sheet_approval(self, db_session):
        process = create_process(db_session)
        sheet, _ = create_sheet(db_session, process, "item", rows_approved=True)
        coordinator = SheetApprovalCoordinator(db_session)
        coordinator.approve_sheet(sheet.sheet_id, "checker1")

        with pytest.raises(AlreadyApprovedError):
            coordinator.approve_sheet(sheet.sheet_id, "checker1")

    def test_rejected_sheet_cannot_be_approved(self, db_session):
        process = create_process(db_session)
        sheet, _ = create_sheet(db_session, process, "item", rows_approved=True, status=SheetStatus.REJECTED)
        with pytest.raises(TransitionError):
            SheetApprovalCoordinator(db_session).approve_sheet(sheet.sheet_id, "checker1")


class TestRowSerialization:
    def test_row_to_dict(self, db_session):
        process = create_process(db_session)
        _, rows = create_sheet(db_session, process, "item", row_count=1)
        data = row_to_dict(rows[0])
        assert data["sheet_id"] == rows[0].sheet_id
        assert data["effective_date"] == "2026-01-01"
        assert data["approved"] is False
        assert isinstance(rows[0], ItemStaging)
