"""
Tests for upload capture and the extraction attempt lifecycle.
"""

import asyncio
import base64
import os

import pytest

import processing
from errors import ServiceError, UserInputError, AnalysisInProgressError, EncodingError
from processing import ExtractionSession, encode_document, encode_documents, NO_FILES_MESSAGE
from schemas import SlotRole, RequestState, EncodedPart, UploadedDocument
from tests.conftest import FakeAPIClient


class TestUploadCapture:

    def test_new_session_has_empty_slots(self, fake_client):
        session = ExtractionSession("s1", fake_client)
        assert session.has_files is False
        assert session.can_analyze is False
        assert session.state == RequestState.IDLE

    def test_select_file_replaces_previous_and_deletes_it(self, fake_client, make_document):
        session = ExtractionSession("s1", fake_client)
        first = make_document("first.pdf")
        session.select_file(SlotRole.INVOICE, first)
        session.select_file(SlotRole.INVOICE, make_document("second.pdf"))
        assert session.slots[SlotRole.INVOICE].filename == "second.pdf"
        assert len(session.populated_documents()) == 1
        assert not os.path.exists(first.path)

    def test_select_file_clears_result_and_error(self, fake_client, make_document):
        session = ExtractionSession("s1", fake_client)
        session.result = "old result"
        session.error = "old error"
        session.error_kind = "service"
        session.state = RequestState.SUCCEEDED

        session.select_file(SlotRole.PACKING_LIST, make_document("pl.png", "image/png"))

        assert session.result is None
        assert session.error is None
        assert session.error_kind is None
        assert session.state == RequestState.IDLE
        assert session.can_analyze is True

    def test_unexpected_mime_type_is_kept(self, fake_client, make_document):
        session = ExtractionSession("s1", fake_client)
        session.select_file(SlotRole.INVOICE, make_document("notes.txt", "text/plain"))
        assert session.slots[SlotRole.INVOICE].mime_type == "text/plain"

    def test_populated_documents_follow_slot_order(self, fake_client, make_document):
        session = ExtractionSession("s1", fake_client)
        session.select_file(SlotRole.BILL_OF_LADING, make_document("bl.pdf"))
        session.select_file(SlotRole.INVOICE, make_document("ci.pdf"))
        roles = [role for role, _ in session.populated_documents()]
        assert roles == [SlotRole.INVOICE, SlotRole.BILL_OF_LADING]

    def test_status_reports_size_in_kb(self, fake_client, make_document):
        session = ExtractionSession("s1", fake_client)
        session.select_file(SlotRole.INVOICE, make_document(content=b"x" * 2048))
        invoice = session.to_status().slots[0]
        assert invoice.size == 2048
        assert invoice.size_kb == 2.0
        assert invoice.label == "Commercial Invoice"

    def test_close_deletes_uploads(self, fake_client, make_document):
        session = ExtractionSession("s1", fake_client)
        invoice = make_document("ci.pdf")
        lading = make_document("bl.pdf")
        session.select_file(SlotRole.INVOICE, invoice)
        session.select_file(SlotRole.BILL_OF_LADING, lading)

        session.close()

        assert session.has_files is False
        assert not os.path.exists(invoice.path)
        assert not os.path.exists(lading.path)


class TestEncoding:

    @pytest.mark.asyncio
    async def test_encode_document(self, make_document):
        part = await encode_document(make_document(content=b"hello"))
        assert part == EncodedPart(mime_type="application/pdf", data=base64.b64encode(b"hello").decode())
        assert part.as_data_url().startswith("data:application/pdf;base64,")

    @pytest.mark.asyncio
    async def test_unreadable_file_raises_encoding_error(self, tmp_path):
        missing = UploadedDocument(
            filename="gone.pdf", mime_type="application/pdf", path=str(tmp_path / "gone.pdf"), size=10
        )
        with pytest.raises(EncodingError) as exc_info:
            await encode_document(missing)
        assert exc_info.value.kind == "service"
        assert "gone.pdf" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_encode_documents_keeps_order_when_completion_is_reversed(self, monkeypatch, make_document):
        delays = {"ci.pdf": 0.05, "pl.pdf": 0.02, "bl.pdf": 0.0}
        original = processing.encode_document

        async def slow_encode(document):
            await asyncio.sleep(delays[document.filename])
            return await original(document)

        monkeypatch.setattr(processing, "encode_document", slow_encode)
        docs = [make_document(name, content=name.encode()) for name in ("ci.pdf", "pl.pdf", "bl.pdf")]
        parts = await encode_documents(docs)
        assert [base64.b64decode(p.data) for p in parts] == [b"ci.pdf", b"pl.pdf", b"bl.pdf"]


class TestAnalysis:

    @pytest.mark.asyncio
    async def test_no_files_is_user_error_without_request(self, fake_client):
        session = ExtractionSession("s1", fake_client)
        with pytest.raises(UserInputError):
            await session.analyze()
        assert session.error == NO_FILES_MESSAGE
        assert session.error_kind == "user_input"
        assert fake_client.calls == []

    @pytest.mark.asyncio
    async def test_success_stores_text_verbatim(self, make_document):
        reply = "  Invoice Number: INV-9\nShipper: Not Found\n"
        client = FakeAPIClient(reply=reply)
        session = ExtractionSession("s1", client)
        session.select_file(SlotRole.INVOICE, make_document())

        await session.analyze()

        assert session.result == reply
        assert session.error is None
        assert session.state == RequestState.SUCCEEDED
        assert session.status_message == ""
        assert session.is_busy is False

    @pytest.mark.asyncio
    async def test_request_parts_follow_slot_order(self, fake_client, make_document):
        session = ExtractionSession("s1", fake_client)
        session.select_file(SlotRole.BILL_OF_LADING, make_document("bl.png", "image/png", b"bl"))
        session.select_file(SlotRole.INVOICE, make_document("ci.pdf", "application/pdf", b"ci"))

        await session.analyze()

        sent = fake_client.calls[0]
        assert [p.mime_type for p in sent.parts] == ["application/pdf", "image/png"]
        assert [base64.b64decode(p.data) for p in sent.parts] == [b"ci", b"bl"]
        assert "Not Found" in sent.prompt

    @pytest.mark.asyncio
    async def test_unreadable_file_fails_attempt_without_request(self, fake_client, make_document):
        session = ExtractionSession("s1", fake_client)
        invoice = make_document("ci.pdf")
        session.select_file(SlotRole.INVOICE, invoice)
        session.select_file(SlotRole.PACKING_LIST, make_document("pl.pdf"))
        os.remove(invoice.path)

        await session.analyze()

        assert session.state == RequestState.FAILED
        assert session.error_kind == "service"
        assert "ci.pdf" in session.error
        assert session.result is None
        assert fake_client.calls == []

    @pytest.mark.asyncio
    async def test_empty_response_is_service_error(self, make_document):
        client = FakeAPIClient(error=ServiceError("The model returned an empty response."))
        session = ExtractionSession("s1", client)
        session.select_file(SlotRole.INVOICE, make_document())

        await session.analyze()

        assert session.result is None
        assert session.error_kind == "service"
        assert session.state == RequestState.FAILED

    @pytest.mark.asyncio
    async def test_missing_key_fails_before_request(self, make_document):
        client = FakeAPIClient(configured=False)
        session = ExtractionSession("s1", client)
        session.select_file(SlotRole.INVOICE, make_document())

        await session.analyze()

        assert session.error_kind == "configuration"
        assert session.error.startswith("Configuration Error:")
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reported(self, make_document):
        client = FakeAPIClient(error=RuntimeError("boom"))
        session = ExtractionSession("s1", client)
        session.select_file(SlotRole.INVOICE, make_document())

        await session.analyze()

        assert session.error == "An unexpected error occurred. boom"
        assert session.state == RequestState.FAILED

    @pytest.mark.asyncio
    async def test_failure_clears_previous_result(self, make_document):
        client = FakeAPIClient()
        session = ExtractionSession("s1", client)
        session.select_file(SlotRole.INVOICE, make_document())
        await session.analyze()
        assert session.result

        client.error = ServiceError("Network error while contacting the model: down")
        await session.analyze()
        assert session.result is None
        assert session.error.startswith("Network error")

    @pytest.mark.asyncio
    async def test_only_one_request_in_flight(self, fake_client, make_document):
        release = fake_client.hold()
        session = ExtractionSession("s1", fake_client)
        session.select_file(SlotRole.INVOICE, make_document())

        first = asyncio.create_task(session.analyze())
        await asyncio.sleep(0.05)
        assert session.state == RequestState.AWAITING_RESPONSE
        assert session.status_message == "Analyzing documents with test-model..."
        assert session.can_analyze is False

        with pytest.raises(AnalysisInProgressError):
            session.begin_analysis()

        release.set()
        await first
        assert len(fake_client.calls) == 1
        assert session.can_analyze is True

    @pytest.mark.asyncio
    async def test_file_replaced_in_flight_is_deleted_when_attempt_ends(self, fake_client, make_document):
        release = fake_client.hold()
        session = ExtractionSession("s1", fake_client)
        first = make_document("first.pdf")
        session.select_file(SlotRole.INVOICE, first)

        attempt = asyncio.create_task(session.analyze())
        await asyncio.sleep(0.05)
        session.select_file(SlotRole.INVOICE, make_document("second.pdf"))
        assert os.path.exists(first.path)

        release.set()
        await attempt
        assert not os.path.exists(first.path)


class TestCopy:

    @pytest.mark.asyncio
    async def test_copy_returns_text_and_reverts_label(self, fake_client):
        session = ExtractionSession("s1", fake_client, copy_delay=0.05)
        session.result = "Carrier: MSC"

        assert session.copy_result() == "Carrier: MSC"
        assert session.copy_label == "Copied!"

        await asyncio.sleep(0.1)
        assert session.copy_label == "Copy"

    @pytest.mark.asyncio
    async def test_copy_without_result_does_nothing(self, fake_client):
        session = ExtractionSession("s1", fake_client, copy_delay=0.05)
        assert session.copy_result() is None
        assert session.copy_label == "Copy"
