from typing import List, Optional, Dict, Any
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, computed_field
from datetime import datetime


NON_BIBLIOGRAPHIC_TYPES = {"attachment", "note", "annotation"}


class Creator(BaseModel):
    """One entry of a record's ordered creator list (Zotero wire names as aliases)"""
    model_config = ConfigDict(populate_by_name=True)

    role: str = Field("author", alias="creatorType")
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    full_name: Optional[str] = Field(None, alias="name")

    @property
    def has_name(self) -> bool:
        return bool((self.last_name or "").strip() or (self.first_name or "").strip() or (self.full_name or "").strip())

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name.strip()
        return " ".join(part for part in [self.first_name, self.last_name] if part).strip()

    def to_zotero(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Record(BaseModel):
    """Host-owned bibliographic record; the engine only reads it"""
    model_config = ConfigDict(frozen=True)

    key: str
    version: int = 0
    fields: Dict[str, Any] = Field(default_factory=dict)

    @property
    def item_type(self) -> str:
        return self.fields.get("itemType") or ""

    @property
    def title(self) -> str:
        return (self.fields.get("title") or "").strip()

    @property
    def creators(self) -> List[Creator]:
        return parse_creators(self.fields.get("creators"))

    @property
    def is_bibliographic(self) -> bool:
        return self.item_type not in NON_BIBLIOGRAPHIC_TYPES

    def get(self, field: str, default: Any = None) -> Any:
        return self.fields.get(field, default)

    def with_fields(self, patch: Dict[str, Any], version: Optional[int] = None) -> "Record":
        """Return a new record with ``patch`` applied on top of a copy of the fields"""
        merged = dict(self.fields)
        merged.update(patch)
        return Record(key=self.key, version=self.version if version is None else version, fields=merged)

    @classmethod
    def from_zotero(cls, item: Dict[str, Any]) -> "Record":
        data = dict(item.get("data") or item)
        key = item.get("key") or data.get("key")
        version = item.get("version", data.get("version", 0))
        data.pop("key", None)
        data.pop("version", None)
        return cls(key=key, version=int(version or 0), fields=data)


def parse_creators(raw: Any) -> List[Creator]:
    creators = []
    for entry in raw or []:
        if isinstance(entry, Creator):
            creators.append(entry)
        elif isinstance(entry, dict):
            creators.append(Creator.model_validate(entry))
    return creators


class MatchReason(str, Enum):
    DOI = "DOI"
    ISBN = "ISBN"
    TITLE = "TITLE"


class DuplicateGroup(BaseModel):
    id: str
    match_reason: MatchReason
    members: List[Record]

    @property
    def member_keys(self) -> List[str]:
        return [member.key for member in self.members]


class SourceName(str, Enum):
    CROSSREF = "crossref"
    OPENALEX = "openalex"
    AI_FALLBACK = "ai_fallback"
    MERGE = "merge"

    @property
    def is_authoritative(self) -> bool:
        return self in (SourceName.CROSSREF, SourceName.OPENALEX)


class EnrichmentPatch(BaseModel):
    """A proposed ``fields`` patch with provenance for every field"""
    source: SourceName
    strategy: str = ""
    fields: Dict[str, Any] = {}
    field_sources: Dict[str, str] = {}


class MergeOutcome(BaseModel):
    master: Record
    deleted: List[str] = []
    already_gone: List[str] = []


class IssueSeverity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RecordIssue(BaseModel):
    field: str
    severity: IssueSeverity
    message: str


class RecordIssues(BaseModel):
    """A record together with every quality problem found on it"""
    record: Record
    issues: List[RecordIssue] = []

    @property
    def high_count(self) -> int:
        return len([i for i in self.issues if i.severity == IssueSeverity.HIGH])


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class VerificationTask(BaseModel):
    id: str
    name: str
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    source: Optional[str] = None


class VerificationFindings(BaseModel):
    publication_exists: bool = False
    authors_valid: bool = False
    data_quality: str = "good"  # "good", "needs_review", "poor"
    missing_fields: List[str] = []
    warnings: List[str] = []
    errors: List[str] = []


def derive_overall_status(findings: VerificationFindings) -> str:
    """Priority cascade; the order of the checks is significant"""
    if findings.errors:
        return "failed"
    if findings.warnings or not findings.publication_exists or not findings.authors_valid:
        return "warning"
    if findings.data_quality != "good":
        return "partial"
    return "success"


class VerificationReport(BaseModel):
    record_key: str
    tasks: List[VerificationTask] = []
    findings: VerificationFindings = Field(default_factory=VerificationFindings)
    recommendations: List[str] = []
    author_corrections: Optional[List[Creator]] = None
    enrichment: Optional[EnrichmentPatch] = None
    created_at: datetime = Field(default_factory=datetime.now)

    @computed_field
    @property
    def overall_status(self) -> str:
        return derive_overall_status(self.findings)


class RecoveryResult(BaseModel):
    success: bool
    fields: Dict[str, Any] = {}
    error: Optional[str] = None


class JobStatus(BaseModel):
    """Job status for batch processing"""
    job_id: str
    operation: str
    status: str  # "pending", "processing", "completed", "failed", "cancelled"
    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    progress: int = 0
    message: str = ""
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancel_requested: bool = False
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class BatchSummary(BaseModel):
    total: int
    succeeded: int = 0
    failed: int = 0
    cancelled: bool = False
    results: Dict[str, Any] = {}
    errors: Dict[str, str] = {}


# API request/response models

class APIResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Any] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class RecordsRequest(BaseModel):
    records: List[Record] = Field(..., description="Snapshot of the records to process")


class RecordRequest(BaseModel):
    record: Record


class AutoMergeRequest(BaseModel):
    group: DuplicateGroup
    enrich: bool = Field(True, description="Fill missing citation fields from the enrichment cascade")


class ManualMergeRequest(BaseModel):
    group: DuplicateGroup
    selections: Dict[str, int] = Field(default_factory=dict, description="Field name -> authoritative member index")
    enrich: bool = True


class FinalizeMergeRequest(BaseModel):
    group: DuplicateGroup
    patch: EnrichmentPatch
    master_index: int = 0


class BatchRequest(BaseModel):
    records: List[Record]
    operation: str = Field("verify", description="verify or enrich")
    delay: Optional[float] = Field(None, description="Seconds to wait between records")
