# processing.py

import asyncio
import base64
from typing import Dict, List, Optional, Tuple

from api_client import APIClient
from config import COPY_LABEL_IDLE, COPY_LABEL_DONE, COPY_FEEDBACK_DELAY
from errors import TradeDocError, UserInputError, EncodingError, AnalysisInProgressError
from prompts import build_extraction_prompt
from schemas import (
    SlotRole, RequestState, UploadedDocument, EncodedPart, SlotSummary, SessionStatus
)
from utils import log, format_size_kb, is_accepted_mime_type, session_context, cleanup_file

NO_FILES_MESSAGE = "Please upload at least one document to begin analysis."
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred."

STATUS_PREPARING = "Preparing documents..."
STATUS_READING = "Reading file data..."
STATUS_ANALYZING = "Analyzing documents with {model}..."


def _read_base64(path: str) -> str:
    with open(path, "rb") as f:
        return base64.b64encode(f.read()).decode("ascii")


async def encode_document(document: UploadedDocument) -> EncodedPart:
    """Reads and base64-encodes one file off the event loop. Fails on its own, per file."""
    try:
        data = await asyncio.to_thread(_read_base64, document.path)
    except OSError as e:
        raise EncodingError(document.filename, e.strerror or str(e)) from e
    return EncodedPart(mime_type=document.mime_type, data=data)


async def encode_documents(documents: List[UploadedDocument]) -> List[EncodedPart]:
    """Encodes all files concurrently; the result keeps the input order."""
    return list(await asyncio.gather(*(encode_document(doc) for doc in documents)))


class ExtractionSession:
    """
    The state behind one page load: three upload slots, the state of the
    current or last attempt, and the copy button's label.

    At most one attempt is outstanding. `begin_analysis` flips the state to
    busy synchronously, so a second trigger on the same event loop is
    rejected before the first one ever suspends.
    """

    def __init__(self, session_id: str, api_client: APIClient, copy_delay: float = COPY_FEEDBACK_DELAY):
        self.session_id = session_id
        self._api_client = api_client
        self._copy_delay = copy_delay
        self._copy_reset_handle: Optional[asyncio.TimerHandle] = None

        self.slots: Dict[SlotRole, Optional[UploadedDocument]] = {role: None for role in SlotRole}
        self.state = RequestState.IDLE
        self.status_message = ""
        self.result: Optional[str] = None
        self.error: Optional[str] = None
        self.error_kind: Optional[str] = None
        self.copy_label = COPY_LABEL_IDLE
        self._retired: List[UploadedDocument] = []

    @property
    def is_busy(self) -> bool:
        return self.state.is_busy

    @property
    def has_files(self) -> bool:
        return any(doc is not None for doc in self.slots.values())

    @property
    def can_analyze(self) -> bool:
        return self.has_files and not self.is_busy

    def populated_documents(self) -> List[Tuple[SlotRole, UploadedDocument]]:
        """Populated slots in fixed slot order, whatever order they were filled in."""
        return [(role, self.slots[role]) for role in SlotRole if self.slots[role] is not None]

    def select_file(self, role: SlotRole, document: UploadedDocument):
        """Stores the file in its slot, replacing any earlier one, and drops the stale outcome."""
        context = session_context(self.session_id, "Upload")
        if not is_accepted_mime_type(document.mime_type):
            log.warning(f"[{context}] '{document.filename}' has type '{document.mime_type}', "
                        f"which the upload form does not offer. Keeping it anyway.")

        previous = self.slots[role]
        self.slots[role] = document
        if previous is not None:
            self._discard(previous)
            log.info(f"[{context}] Replaced '{previous.filename}' in slot '{role.value}' with '{document.filename}'.")
        else:
            log.info(f"[{context}] Stored '{document.filename}' ({document.size} bytes) in slot '{role.value}'.")

        self._clear_outcome()
        if not self.is_busy:
            self.state = RequestState.IDLE

    def begin_analysis(self) -> List[UploadedDocument]:
        """
        Validates the trigger and marks the session busy.
        Returns the documents to send, snapshotted in slot order.
        """
        context = session_context(self.session_id, "Extraction")
        if self.is_busy:
            raise AnalysisInProgressError("An analysis is already in progress.")
        if not self.has_files:
            log.warning(f"[{context}] Analysis triggered with no documents selected.")
            self.error = NO_FILES_MESSAGE
            self.error_kind = UserInputError.kind
            raise UserInputError(NO_FILES_MESSAGE)

        documents = [doc for _, doc in self.populated_documents()]
        self._clear_outcome()
        self.state = RequestState.ENCODING
        self.status_message = STATUS_PREPARING
        log.info(f"[{context}] Starting analysis of {len(documents)} document(s).")
        return documents

    async def run_analysis(self, documents: List[UploadedDocument]):
        """Encodes, sends and stores the outcome of one attempt started by `begin_analysis`."""
        context = session_context(self.session_id, "Extraction")
        try:
            self._api_client.check_configuration()

            self.status_message = STATUS_READING
            parts = await encode_documents(documents)
            prompt = build_extraction_prompt()

            self.state = RequestState.AWAITING_RESPONSE
            self.status_message = STATUS_ANALYZING.format(model=self._api_client.model)
            text = await self._api_client.generate_text(prompt, parts, context)

            self.result = text
            self.error = None
            self.error_kind = None
            self.state = RequestState.SUCCEEDED
            log.info(f"[{context}] Analysis succeeded ({len(text)} characters).")
        except TradeDocError as e:
            log.error(f"[{context}] Analysis failed: {e}")
            self._fail(e.message, e.kind)
        except Exception as e:
            log.exception(f"[{context}] Analysis failed with an unexpected error.")
            self._fail(f"{UNEXPECTED_ERROR_MESSAGE} {e}".strip(), "unexpected")
        finally:
            self.status_message = ""
            if self.state.is_busy:
                self.state = RequestState.IDLE
            self._release_retired()

    async def analyze(self):
        """Runs one complete attempt. Raises on a rejected trigger, records every other failure."""
        documents = self.begin_analysis()
        await self.run_analysis(documents)

    def close(self):
        """Drops every uploaded file. An attempt still in flight keeps its files until it ends."""
        for role in SlotRole:
            if self.slots[role] is not None:
                self._discard(self.slots[role])
                self.slots[role] = None
        self._clear_outcome()
        log.info(f"[{session_context(self.session_id, 'Session')}] Session closed.")

    def _discard(self, document: UploadedDocument):
        # A running attempt may still read the file; delete it once the attempt ends
        if self.is_busy:
            self._retired.append(document)
        else:
            cleanup_file(document.path)

    def _release_retired(self):
        retired, self._retired = self._retired, []
        for document in retired:
            cleanup_file(document.path)

    def copy_result(self) -> Optional[str]:
        """
        Returns the exact result text for the clipboard and shows the confirmation
        label, which reverts after the configured delay. Must run inside the event loop.
        """
        if not self.result:
            return None
        self.copy_label = COPY_LABEL_DONE
        if self._copy_reset_handle is not None:
            self._copy_reset_handle.cancel()
        loop = asyncio.get_running_loop()
        self._copy_reset_handle = loop.call_later(self._copy_delay, self._reset_copy_label)
        return self.result

    def _reset_copy_label(self):
        self.copy_label = COPY_LABEL_IDLE
        self._copy_reset_handle = None

    def _clear_outcome(self):
        self.result = None
        self.error = None
        self.error_kind = None
        if self._copy_reset_handle is not None:
            self._copy_reset_handle.cancel()
        self._reset_copy_label()

    def _fail(self, message: str, kind: str):
        self.result = None
        self.error = message
        self.error_kind = kind
        self.state = RequestState.FAILED

    def to_status(self) -> SessionStatus:
        slots = []
        for role in SlotRole:
            doc = self.slots[role]
            if doc is None:
                slots.append(SlotSummary(role=role, label=role.label))
            else:
                slots.append(SlotSummary(
                    role=role, label=role.label, filename=doc.filename, mime_type=doc.mime_type,
                    size=doc.size, size_kb=format_size_kb(doc.size),
                ))
        return SessionStatus(
            session_id=self.session_id,
            state=self.state,
            status_message=self.status_message,
            result=self.result,
            error=self.error,
            error_kind=self.error_kind,
            copy_label=self.copy_label,
            can_analyze=self.can_analyze,
            slots=slots,
        )
