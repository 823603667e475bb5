"""Retrieval-augmented answers over an uploaded document."""
import logging
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional

import tiktoken
from langchain_core.documents import Document as LangchainDocument
from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_core.runnables import RunnableConfig
from langchain_core.vectorstores import InMemoryVectorStore
from langchain_text_splitters import RecursiveCharacterTextSplitter

from errors import DocumentLoadError, ModelInvocationError
from services.files import FileAccessor

logger = logging.getLogger(__name__)

QA_PROMPT = """You are a helpful assistant answering questions about a document the user uploaded.
Use only the following excerpts from the document to answer. If the excerpts do not contain
the answer, say that the document does not cover it.

Document excerpts:
{context}
"""


@lru_cache(maxsize=4)
def _encoding(model_name: str):
    return tiktoken.encoding_for_model(model_name)


def token_length(text: str, model_name: str = "gpt-4o-mini") -> int:
    """Calculate token length of text."""
    return len(_encoding(model_name).encode(text))


class ChunkProcessor:
    """Splits document text into fixed-size overlapping chunks."""

    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 150,
        length_function: Callable[[str], int] = token_length,
    ):
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.text_splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            length_function=length_function,
            separators=["\n\n", "\n", ". ", " ", ""]
        )

    def create_chunks(self, text: str, metadata: Dict[str, Any]) -> List[LangchainDocument]:
        """Split text into chunks with metadata."""
        text_chunks = self.text_splitter.split_text(text)
        return [
            LangchainDocument(
                page_content=chunk_text,
                metadata={**metadata, "chunk_index": idx, "chunk_total": len(text_chunks)},
            )
            for idx, chunk_text in enumerate(text_chunks)
        ]


def format_context_for_prompt(chunks: List[LangchainDocument]) -> str:
    """Format retrieved chunks into context for the LLM prompt."""
    context_parts = []
    for i, chunk in enumerate(chunks, 1):
        index = chunk.metadata.get("chunk_index", "?")
        context_parts.append(f"[Excerpt {i}, chunk {index}]\n{chunk.page_content}\n")
    return "\n---\n".join(context_parts)


class DocumentQA:
    """
    Single-shot question answering against one uploaded file.

    The vector index is built from scratch on every call and discarded
    afterwards; nothing is cached between turns.
    """

    def __init__(
        self,
        model: BaseChatModel,
        embeddings: Embeddings,
        file_accessor: FileAccessor,
        chunk_processor: Optional[ChunkProcessor] = None,
        k: int = 3,
    ):
        self.model = model
        self.embeddings = embeddings
        self.file_accessor = file_accessor
        self.chunk_processor = chunk_processor or ChunkProcessor()
        self.k = k

    async def retrieve(self, file_id: str, file_type: Optional[str], question: str) -> List[LangchainDocument]:
        """Load, chunk and index the file, then return the chunks closest to ``question``."""
        text = await self.file_accessor.load_text(file_id, file_type)
        chunks = self.chunk_processor.create_chunks(text, {"file_id": file_id})
        if not chunks:
            raise DocumentLoadError(f"File {file_id} has no text to search")

        try:
            index = InMemoryVectorStore(self.embeddings)
            await index.aadd_documents(chunks)
            results = await index.asimilarity_search(question, k=self.k)
        except Exception as e:
            logger.error(f"Error indexing file {file_id}: {e}")
            raise ModelInvocationError(f"Embedding failed for file {file_id}: {e}") from e

        logger.info(f"Indexed {len(chunks)} chunks of file {file_id}; retrieved {len(results)}")
        return results

    async def answer(
        self,
        file_id: str,
        file_type: Optional[str],
        question: str,
        config: Optional[RunnableConfig] = None,
    ) -> AIMessage:
        results = await self.retrieve(file_id, file_type, question)
        messages = [
            SystemMessage(content=QA_PROMPT.format(context=format_context_for_prompt(results))),
            HumanMessage(content=question),
        ]

        try:
            return await self.model.ainvoke(messages, config)
        except Exception as e:
            logger.error(f"Document answer failed for file {file_id}: {e}")
            raise ModelInvocationError(f"Model call failed: {e}") from e
