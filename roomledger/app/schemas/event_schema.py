"""
schemas/event_schema.py — Marshmallow schemas for event endpoints.

Date ordering (end_date >= start_date) is checked here for creation and in
event_service.py for PATCH, where one side may come from the stored event.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    validate,
    validates_schema,
)

from roomledger.app.errors import ErrorCode
from roomledger.app.models.event import EventRole


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class CreateEventSchema(Schema):
    """POST /events"""

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=100, error="Name must be between 1 and 100 characters."),
            _validate_non_empty_after_trim,
        ],
    )
    description = fields.Str(load_default=None, allow_none=True)
    start_date = fields.Date(load_default=None, allow_none=True)
    end_date = fields.Date(load_default=None, allow_none=True)

    @validates_schema
    def validate_date_range(self, data: dict, **kwargs) -> None:
        start_date = data.get("start_date")
        end_date = data.get("end_date")
        if start_date is not None and end_date is not None and end_date < start_date:
            raise ValidationError({"end_date": [ErrorCode.INVALID_DATE_RANGE]})


class PatchEventSchema(Schema):
    """PATCH /events/:id — all fields optional."""

    name = fields.Str(
        validate=[
            validate.Length(min=1, max=100, error="Name must be between 1 and 100 characters."),
            _validate_non_empty_after_trim,
        ],
    )
    description = fields.Str(allow_none=True)
    start_date = fields.Date(allow_none=True)
    end_date = fields.Date(allow_none=True)


class AddEventMemberSchema(Schema):
    """POST /events/:id/members"""

    user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )
    role = fields.Enum(
        EventRole,
        load_default=EventRole.MEMBER,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_EVENT_ROLE},
    )
