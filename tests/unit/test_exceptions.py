"""Unit tests for domain exceptions and structured results."""

from fastapi import HTTPException
import pytest

from autoecole.core.exceptions import (
    BUSINESS_RULE_ERRORS,
    BusinessRuleException,
    ConcurrentModificationException,
    ConflictException,
    ForbiddenException,
    FreezeWindowException,
    NotFoundException,
    ServiceException,
    SlotOverlapException,
    TimingException,
    ValidationException,
    http_status_for_category,
)
from autoecole.schemas.result import OperationResult


@pytest.mark.unit
class TestCategories:
    @pytest.mark.parametrize(
        "exc_class,category,status",
        [
            (ValidationException, "validation_error", 400),
            (NotFoundException, "not_found", 404),
            (ConflictException, "conflict", 409),
            (BusinessRuleException, "business_rule", 422),
            (TimingException, "timing_error", 422),
            (ForbiddenException, "authorization_error", 403),
            (ServiceException, "service_error", 500),
        ],
    )
    def test_category_and_status(self, exc_class, category, status):
        exc = exc_class("boom")
        assert exc.category == category
        assert exc.http_status == status
        assert http_status_for_category(category) == status

    def test_unknown_category_maps_to_500(self):
        assert http_status_for_category("mystery") == 500

    def test_service_errors_are_not_business_rules(self):
        assert not issubclass(ServiceException, BUSINESS_RULE_ERRORS)

    def test_default_code_is_class_name(self):
        assert NotFoundException("missing").code == "NotFoundException"


@pytest.mark.unit
class TestSpecificExceptions:
    def test_slot_overlap_details(self):
        exc = SlotOverlapException("2026-03-03", "10:30-11:30", "10:00-11:00", "slot-a")
        assert exc.code == "SLOT_OVERLAP"
        assert exc.details == {
            "date": "2026-03-03",
            "new_slot": "10:30-11:30",
            "conflicting_slot": "10:00-11:00",
            "conflicting_slot_id": "slot-a",
        }
        assert isinstance(exc, ConflictException)

    def test_freeze_window_is_timing_error(self):
        exc = FreezeWindowException(required_hours=2, provided_hours=1.23456)
        assert exc.category == "timing_error"
        assert exc.details["provided_hours"] == 1.23

    def test_concurrent_modification_is_conflict(self):
        exc = ConcurrentModificationException()
        assert exc.code == "CONCURRENT_MODIFICATION"
        assert exc.http_status == 409

    def test_to_http_exception(self):
        http_exc = ForbiddenException("nope", code="NOT_SLOT_OWNER").to_http_exception()
        assert isinstance(http_exc, HTTPException)
        assert http_exc.status_code == 403
        assert http_exc.detail["code"] == "NOT_SLOT_OWNER"
        assert http_exc.detail["category"] == "authorization_error"


@pytest.mark.unit
class TestOperationResult:
    def test_ok(self):
        result = OperationResult.ok({"id": "x"})
        assert result.success
        assert result.data == {"id": "x"}
        assert result.error is None

    def test_fail_carries_error_fields(self):
        exc = ValidationException("bad", code="BAD", details={"field": "x"})
        result = OperationResult.fail(exc)
        assert not result.success
        assert result.data is None
        assert result.error.code == "BAD"
        assert result.error.category == "validation_error"
        assert result.error.message == "bad"
        assert result.error.details == {"field": "x"}
