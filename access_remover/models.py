from datetime import datetime
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

DRIVE_VIEW_LINK = "https://drive.google.com/file/d/{file_id}/view"


class DriveItem(BaseModel):
    """Represents a file or folder returned by a Drive search."""
    id: str
    name: str = 'Untitled'
    mimeType: str = ''
    webViewLink: str = ''
    ownerEmail: Optional[str] = None

    @classmethod
    def from_api(cls, item: dict) -> "DriveItem":
        owners = item.get('owners') or [{}]
        return cls(
            id=item['id'],
            name=item.get('name') or 'Untitled',
            mimeType=item.get('mimeType') or '',
            webViewLink=DRIVE_VIEW_LINK.format(file_id=item['id']),
            ownerEmail=owners[0].get('emailAddress'),
        )


class PermissionDetails(BaseModel):
    """Represents a specific permission on a Drive item."""
    id: str
    type: Optional[str] = None  # 'user', 'group', 'domain', 'anyone'
    role: Optional[str] = None  # 'owner', 'organizer', 'fileOrganizer', 'writer', 'commenter', 'reader'
    emailAddress: Optional[str] = None


# --- Outcomes: exactly one terminal classification per (file, target email) ---

class _OutcomeBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    file_id: str
    title: str
    mime_type: str = ''
    file_type: str = 'Other Files'
    target_email: str
    link: str
    owner_email: Optional[str] = None

    @property
    def removed(self) -> bool:
        return self.kind == 'removed'

    @property
    def found_but_blocked(self) -> bool:
        return self.kind == 'found_but_blocked'

    @property
    def skipped(self) -> bool:
        return self.kind == 'skipped'

    @property
    def error(self) -> Optional[str]:
        if self.kind == 'error':
            return self.message
        return None

    @property
    def matched_role(self) -> Optional[str]:
        return getattr(self, 'role', None)


class Removed(_OutcomeBase):
    kind: Literal['removed'] = 'removed'
    role: str


class FoundButBlocked(_OutcomeBase):
    kind: Literal['found_but_blocked'] = 'found_but_blocked'
    role: str
    message: str = ''


class Skipped(_OutcomeBase):
    kind: Literal['skipped'] = 'skipped'
    reason: str


class ErrorOutcome(_OutcomeBase):
    kind: Literal['error'] = 'error'
    message: str
    role: Optional[str] = None


class NoMatch(_OutcomeBase):
    kind: Literal['no_match'] = 'no_match'


Outcome = Annotated[
    Union[Removed, FoundButBlocked, Skipped, ErrorOutcome, NoMatch],
    Field(discriminator='kind'),
]

OutcomeLog = TypeAdapter(List[Outcome])


class ScanCursor(BaseModel):
    """The persisted position of a run. Lives in the state store between batches."""
    is_running: bool = False
    email_index: int = 0
    page_token: Optional[str] = None
    processed_count: int = 0
    start_time: datetime
    current_email: str = ''
    run_id: str = ''
    outcomes: List[Outcome] = []


class ScanStatus(BaseModel):
    is_running: bool
    current_email: Optional[str] = None
    current_email_index: Optional[int] = None
    total_emails: Optional[int] = None
    files_processed: int = 0
    start_time: Optional[datetime] = None
    running_minutes: Optional[int] = None


# --- Summary ---

class ManualReviewItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    email: str
    file_type: str
    role: Optional[str] = None
    link: str
    owner_email: str = 'Unknown owner'


class EmailStats(BaseModel):
    files_found: int = 0
    removals: int = 0
    found_but_blocked: int = 0
    errors: int = 0
    skipped: int = 0
    needs_manual_review: List[ManualReviewItem] = []

    @property
    def success_rate(self) -> int:
        if not self.files_found:
            return 0
        return round(self.removals / self.files_found * 100)


class FileTypeStats(BaseModel):
    processed: int = 0
    removed: int = 0
    found_but_blocked: int = 0
    errors: int = 0
    skipped: int = 0
    files: List[Outcome] = []


class Summary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_files: int
    start_time: datetime
    end_time: datetime
    target_emails: List[str]
    by_email: Dict[str, EmailStats]
    by_file_type: Dict[str, FileTypeStats]
    total_removals: int = 0
    total_found_but_blocked: int = 0
    total_errors: int = 0
    total_skipped: int = 0
    files_needing_manual_review: List[ManualReviewItem] = []

    @property
    def duration_minutes(self) -> int:
        return round((self.end_time - self.start_time).total_seconds() / 60)
