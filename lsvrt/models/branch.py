"""Branch references and the repository state captured at startup."""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

_SEPARATORS = re.compile(r"[\\/]")


def sanitize_branch_name(name: str) -> str:
    """Turn a branch name into a single filesystem-safe path component."""
    return _SEPARATORS.sub("__", name)


class BranchRef(BaseModel):
    name: str

    @property
    def sanitized(self) -> str:
        return sanitize_branch_name(self.name)

    def __str__(self) -> str:
        return self.name


class OriginalBranchState(BaseModel):
    """What the working tree looked like before the run touched it."""
    branch: str
    changed_files: list[str] = Field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.changed_files
