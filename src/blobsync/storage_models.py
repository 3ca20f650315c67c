"""Result models for sync operations."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class TransferAction(str, Enum):
    """What a fetch or publish did for one key."""
    DOWNLOADED = "downloaded"  # Transferred from the backend
    COPIED = "copied"          # Reproduced from a local file with the same digest
    UPLOADED = "uploaded"      # Transferred to the backend
    SKIPPED = "skipped"        # Nothing to do (already present)
    FAILED = "failed"          # Error recorded, batch continued


class FetchResult(BaseModel):
    """Outcome of fetching one key."""
    key: str
    path: str                       # Local destination path
    action: TransferAction
    digest: Optional[str] = None    # Backend digest, if it was looked up
    source: Optional[str] = None    # Local file used instead of a download
    error: Optional[str] = None


class PublishResult(BaseModel):
    """Outcome of publishing one key."""
    key: str
    action: TransferAction
    digest: Optional[str] = None
    size: int = 0
    error: Optional[str] = None


class SyncReport(BaseModel):
    """Aggregated outcome of a batch fetch or publish."""
    fetched: List[FetchResult] = Field(default_factory=list)
    published: List[PublishResult] = Field(default_factory=list)

    @property
    def results(self) -> list:
        return [*self.fetched, *self.published]

    @property
    def failed(self) -> list:
        return [r for r in self.results if r.action == TransferAction.FAILED]

    @property
    def ok(self) -> bool:
        return not self.failed

    def count(self, action: TransferAction) -> int:
        return sum(1 for r in self.results if r.action == action)

    def summary(self) -> str:
        parts = [
            f"{self.count(action)} {action.value}"
            for action in TransferAction
            if self.count(action)
        ]
        return ", ".join(parts) if parts else "nothing to do"
