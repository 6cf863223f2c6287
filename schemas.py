# schemas.py

from enum import Enum
from pydantic import BaseModel
from typing import Optional, List

from config import SLOT_LABELS


class SlotRole(str, Enum):
    """The three fixed upload roles. Declaration order is the order parts are sent in."""
    INVOICE = "invoice"
    PACKING_LIST = "packing_list"
    BILL_OF_LADING = "bill_of_lading"

    @property
    def label(self) -> str:
        return SLOT_LABELS[self.value]


class RequestState(str, Enum):
    IDLE = "idle"
    ENCODING = "encoding"
    AWAITING_RESPONSE = "awaiting_response"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_busy(self) -> bool:
        return self in (RequestState.ENCODING, RequestState.AWAITING_RESPONSE)


class UploadedDocument(BaseModel):
    """A single file held by a slot. The bytes stay on disk until the attempt reads them."""
    filename: str
    mime_type: str
    path: str
    size: int


class EncodedPart(BaseModel):
    """A file's content as base64 text paired with its MIME type."""
    mime_type: str
    data: str

    def as_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class SlotSummary(BaseModel):
    role: SlotRole
    label: str
    filename: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    size_kb: Optional[float] = None


class SessionStatus(BaseModel):
    """Defines the schema for a session's status response."""
    session_id: str
    state: RequestState
    status_message: str = ""
    result: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    copy_label: str
    can_analyze: bool
    slots: List[SlotSummary]


class CopyResponse(BaseModel):
    text: str
    copy_label: str
