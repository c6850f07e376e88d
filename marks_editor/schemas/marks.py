"""Pydantic v2 schemas for the marks API payloads.

These mirror what the upstream marks service returns when a batch is
opened (``BatchDetail``) and what it accepts on a partial update
(``SaveRequest``).
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class StudentMark(BaseModel):
    """A single student's score record within a batch.

    Records are frozen: edits always produce a new instance, so snapshots
    held on the undo and redo stacks can share them safely.

    Attributes:
        id: Stable record identifier.
        registration_number: Student registration number.
        full_name: Student display name.
        score: Raw score, or ``None`` when not entered.
        comment: Free-text teacher comment.
        grade: Derived grade letter, ``""`` when score is absent.
        is_below_half: Derived flag, true when score is under half of max.
    """

    model_config = ConfigDict(
        strict=False,
        populate_by_name=True,
        frozen=True,
        coerce_numbers_to_str=True,
    )

    id: str
    registration_number: str
    full_name: str
    score: float | None = None
    comment: str | None = None
    grade: str = Field(default="")
    is_below_half: bool = Field(default=False)


class BatchInfo(BaseModel):
    """Descriptor of a batch of marks uploaded for one subject/class/term.

    Attributes:
        group_key: Identifier of the batch.
        subject: Subject name.
        class_name: Class the batch belongs to.
        term: Academic term.
        max_score: Maximum attainable score, fixed for the batch.
        can_edit: Server-computed edit-window flag.
        time_left_hours: Hours left in the edit window (display only).
    """

    model_config = ConfigDict(
        strict=False,
        populate_by_name=True,
        frozen=True,
        coerce_numbers_to_str=True,
    )

    group_key: str
    subject: str
    class_name: str
    term: str
    max_score: float = Field(..., gt=0)
    can_edit: bool = Field(
        default=False, validation_alias=AliasChoices("can_edit", "is_editable")
    )
    time_left_hours: float | None = None
    subject_code: str | None = None
    department: str | None = None
    academic_year: str | None = None
    total_students: int | None = None
    uploaded_at: str | None = None


class Pagination(BaseModel):
    """Pagination metadata returned alongside a page of marks."""

    model_config = ConfigDict(strict=False, populate_by_name=True)

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=0, ge=0)
    total_pages: int = Field(default=1, ge=0)
    total_count: int = Field(default=0, ge=0)


class BatchDetail(BaseModel):
    """Response of the load-batch endpoint.

    Attributes:
        id: Upstream identifier of the batch detail, when present.
        batch: The batch descriptor.
        pagination: Page metadata for ``marks``.
        marks: Ordered student records for the requested page.
    """

    model_config = ConfigDict(strict=False, populate_by_name=True)

    id: str | None = None
    batch: BatchInfo
    pagination: Pagination = Field(default_factory=Pagination)
    marks: list[StudentMark]


class RecentBatch(BaseModel):
    """Summary row of a recently uploaded batch."""

    model_config = ConfigDict(
        strict=False, populate_by_name=True, coerce_numbers_to_str=True
    )

    id: str
    group_key: str
    subject_name: str
    department: str | None = None
    class_name: str
    term: str
    uploaded_by: str | None = None
    uploaded_at: str | None = None
    is_editable: bool = False
    time_left_hours: float | None = None


class MarkUpdate(BaseModel):
    """One entry of a change-set.

    Only the fields that differ from the baseline are set; serialise with
    ``model_dump(exclude_unset=True)`` so untouched fields are omitted
    rather than resent with their old value.  ``score=None`` clears a
    score and ``comment=""`` clears a comment.
    """

    model_config = ConfigDict(strict=False, populate_by_name=True, frozen=True)

    id: str
    score: float | None = None
    comment: str | None = None


class SaveRequest(BaseModel):
    """Body of the partial-update call: ``{"marks": [...]}``."""

    model_config = ConfigDict(strict=False, populate_by_name=True)

    marks: list[MarkUpdate]

    def to_payload(self) -> dict:
        """Return the JSON body with unchanged fields omitted per row."""
        return {"marks": [m.model_dump(exclude_unset=True) for m in self.marks]}


class MarksOverview(BaseModel):
    """Upload progress for the current term.

    Attributes:
        total_expected: Number of batches expected this term.
        uploaded: Number of batches uploaded so far.
        percentage: ``uploaded`` as a percentage of ``total_expected``.
        term: Term the figures refer to.
        academic_year: Academic year the figures refer to.
    """

    model_config = ConfigDict(
        strict=False, populate_by_name=True, coerce_numbers_to_str=True
    )

    total_expected: int = Field(default=0, ge=0)
    uploaded: int = Field(default=0, ge=0)
    percentage: float = Field(default=0.0, ge=0)
    term: str
    academic_year: str
