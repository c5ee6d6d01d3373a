"""Diff stage outputs."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DiffSummary(BaseModel):
    """Item lists from the JSON summary a diff tool writes next to its report."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    failed_items: list[str] = Field(default_factory=list, alias="failedItems")
    new_items: list[str] = Field(default_factory=list, alias="newItems")
    deleted_items: list[str] = Field(default_factory=list, alias="deletedItems")
    passed_items: list[str] = Field(default_factory=list, alias="passedItems")

    @property
    def has_changes(self) -> bool:
        return bool(self.failed_items or self.new_items or self.deleted_items)


class DiffResult(BaseModel):
    backend: str
    workspace: str
    report_path: Optional[str] = None  # None when the tool wrote no HTML report
    summary: Optional[DiffSummary] = None
