"""
Tests for document chunking, retrieval and file loading.
"""

from typing import List
from unittest.mock import MagicMock, patch

import pytest
from langchain_core.documents import Document as LangchainDocument
from langchain_core.embeddings import DeterministicFakeEmbedding, Embeddings
from langchain_core.messages import AIMessage

from conftest import DOCUMENT_TEXT, FakeFileAccessor, ScriptedChatModel
from errors import DocumentLoadError, ModelInvocationError
from models.documents import Document
from services.document_qa import ChunkProcessor, DocumentQA, format_context_for_prompt
from services.files import StoredFileAccessor, extract_text_from_pdf


class FailingEmbeddings(Embeddings):

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        raise RuntimeError("embedding quota exceeded")

    def embed_query(self, text: str) -> List[float]:
        raise RuntimeError("embedding quota exceeded")


def make_qa(texts=None, model=None, embeddings=None):
    return DocumentQA(
        model=model or ScriptedChatModel(default=AIMessage(content="From the document.")),
        embeddings=embeddings or DeterministicFakeEmbedding(size=32),
        file_accessor=FakeFileAccessor(texts if texts is not None else {"doc123": DOCUMENT_TEXT}),
        chunk_processor=ChunkProcessor(chunk_size=200, chunk_overlap=20, length_function=len),
        k=3,
    )


class TestChunkProcessor:

    def test_chunks_carry_position_metadata(self):
        processor = ChunkProcessor(chunk_size=200, chunk_overlap=20, length_function=len)

        chunks = processor.create_chunks(DOCUMENT_TEXT, {"file_id": "doc123"})

        assert len(chunks) > 3
        assert all(len(c.page_content) <= 200 for c in chunks)
        assert [c.metadata["chunk_index"] for c in chunks] == list(range(len(chunks)))
        assert all(c.metadata["chunk_total"] == len(chunks) for c in chunks)
        assert all(c.metadata["file_id"] == "doc123" for c in chunks)

    def test_empty_text(self):
        processor = ChunkProcessor(length_function=len)
        assert processor.create_chunks("", {}) == []

    def test_format_context(self):
        chunks = [
            LangchainDocument(page_content="alpha", metadata={"chunk_index": 4}),
            LangchainDocument(page_content="beta", metadata={"chunk_index": 7}),
        ]

        context = format_context_for_prompt(chunks)

        assert "[Excerpt 1, chunk 4]\nalpha" in context
        assert "[Excerpt 2, chunk 7]\nbeta" in context


class TestDocumentQA:

    @pytest.mark.asyncio
    async def test_retrieves_top_k(self):
        results = await make_qa().retrieve("doc123", "pdf", "outlook for region 5")

        assert len(results) == 3
        assert all(r.metadata["file_id"] == "doc123" for r in results)

    @pytest.mark.asyncio
    async def test_answer_is_single_message(self):
        model = ScriptedChatModel(default=AIMessage(content="Region 5 looks stable."))
        answer = await make_qa(model=model).answer("doc123", "pdf", "outlook for region 5")

        assert isinstance(answer, AIMessage)
        assert answer.content == "Region 5 looks stable."
        assert len(model.calls) == 1
        assert "Document excerpts:" in model.calls[0][0].content

    @pytest.mark.asyncio
    async def test_unknown_file(self):
        with pytest.raises(DocumentLoadError):
            await make_qa().retrieve("missing", "pdf", "anything")

    @pytest.mark.asyncio
    async def test_file_without_text(self):
        with pytest.raises(DocumentLoadError):
            await make_qa(texts={"blank": ""}).retrieve("blank", "pdf", "anything")

    @pytest.mark.asyncio
    async def test_embedding_failure(self):
        with pytest.raises(ModelInvocationError):
            await make_qa(embeddings=FailingEmbeddings()).retrieve("doc123", "pdf", "anything")

    @pytest.mark.asyncio
    async def test_model_failure(self):
        model = ScriptedChatModel(error=RuntimeError("timeout"))

        with pytest.raises(ModelInvocationError):
            await make_qa(model=model).answer("doc123", "pdf", "anything")


class TestStoredFileAccessor:

    def add_document(self, session_factory, **overrides):
        fields = dict(
            id="doc123",
            user_id="user-1",
            filename="report.pdf",
            file_type="pdf",
            file_size=1024,
            minio_object_name="user-1/report.pdf",
            bucket_name="documents",
            content_type="application/pdf",
        )
        fields.update(overrides)
        db = session_factory()
        db.add(Document(**fields))
        db.commit()
        db.close()

    @pytest.mark.asyncio
    async def test_loads_pdf_text(self, session_factory):
        self.add_document(session_factory)
        storage = MagicMock()
        storage.download_file.return_value = b"%PDF-1.4 bytes"
        accessor = StoredFileAccessor(session_factory, lambda: storage)

        with patch("services.files.extract_text_from_pdf", return_value="Quarterly report"):
            text = await accessor.load_text("doc123", "pdf")

        assert text == "Quarterly report"
        storage.download_file.assert_called_once_with(object_name="user-1/report.pdf", bucket_name="documents")

    @pytest.mark.asyncio
    async def test_unknown_document(self, session_factory):
        accessor = StoredFileAccessor(session_factory, MagicMock())

        with pytest.raises(DocumentLoadError):
            await accessor.load_text("missing", "pdf")

    @pytest.mark.asyncio
    async def test_file_type_mismatch(self, session_factory):
        self.add_document(session_factory, file_type="txt")
        accessor = StoredFileAccessor(session_factory, MagicMock())

        with pytest.raises(DocumentLoadError):
            await accessor.load_text("doc123", "pdf")

    @pytest.mark.asyncio
    async def test_download_failure(self, session_factory):
        self.add_document(session_factory)
        storage = MagicMock()
        storage.download_file.return_value = None
        accessor = StoredFileAccessor(session_factory, lambda: storage)

        with pytest.raises(DocumentLoadError):
            await accessor.load_text("doc123", "pdf")

    def test_unreadable_pdf(self):
        with pytest.raises(DocumentLoadError):
            extract_text_from_pdf(b"this is not a pdf")
