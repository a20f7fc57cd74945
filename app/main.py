"""
FastAPI Application Entry Point.

Opinion Drafting Assistant API.
"""

import shutil
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from app.config import get_settings
from app.dependencies import Services, get_services, new_document_id
from src.agents import (
    ChatResponse,
    DraftingError,
    OrchestrationError,
    ReviewError,
    SectionAnswer,
    SectionGenerationState,
    SectionStart,
    SectionStateError,
    WorkflowPhase,
    join_sections,
    section_title,
)
from src.agents.generation import GenerationError
from src.ingestion import DocumentLoaderError, DocumentType
from src.knowledge import (
    ConversationMessage,
    MessageRole,
    OpinionSection,
    OpinionStoreError,
    SectionNotFoundError,
    VectorStoreError,
)
from src.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    setup_logging(settings.log_level)
    logger.info("Starting Opinion Drafting Assistant API...")
    logger.info(f"LLM Backend: {settings.llm_backend.value}")
    logger.info(f"Embedding Backend: {settings.embedding_backend.value}")
    settings.ensure_directories()
    yield
    logger.info("Shutting down Opinion Drafting Assistant API...")


app = FastAPI(
    title="Opinion Drafting Assistant",
    description="Conversational drafting of multi-section tax opinions with retrieval over uploaded documents",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Request Models
# ============================================================================

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    current_phase: WorkflowPhase | None = None


class StartSectionRequest(BaseModel):
    section_type: str = Field(..., min_length=1)
    custom_title: str | None = None


class AnswerRequest(BaseModel):
    state: SectionGenerationState
    answer: str = Field(..., min_length=1)


class GenerateRequest(BaseModel):
    state: SectionGenerationState


class ManualSectionRequest(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    section_type: str = "custom"
    order: int | None = Field(default=None, ge=1)


class SectionUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    content: str | None = Field(default=None, min_length=1)
    reviewed: bool | None = None


class SectionPosition(BaseModel):
    id: int
    order: int = Field(..., ge=1)


class ReorderRequest(BaseModel):
    sections: list[SectionPosition] = Field(..., min_length=1)


# ============================================================================
# Health & Config
# ============================================================================

@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/config")
async def get_config() -> dict[str, str]:
    """Get current configuration (non-sensitive values only)."""
    return {
        "llm_backend": settings.llm_backend.value,
        "embedding_backend": settings.embedding_backend.value,
        "embedding_model": settings.embedding_model,
        "ollama_model": settings.ollama_model if settings.llm_backend.value == "ollama" else "N/A",
    }


# ============================================================================
# Documents
# ============================================================================

@app.post("/drafts/{draft_id}/documents")
async def upload_document(
    draft_id: int,
    file: UploadFile = File(...),
    category: str = Form("general"),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """
    Upload a document to a draft and index it for search.

    Accepts .txt, .md and .pdf files.
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")

    suffix = file.filename.rsplit(".", 1)[-1].lower() if "." in file.filename else ""
    if suffix not in {t.value for t in DocumentType}:
        raise HTTPException(status_code=400, detail="Only .txt, .md and .pdf files are supported")

    logger.info(f"Received document for draft {draft_id}: {file.filename}")

    document_id = new_document_id()
    upload_dir = services.settings.data_uploads_dir / str(draft_id)
    upload_dir.mkdir(parents=True, exist_ok=True)
    upload_path = upload_dir / f"{document_id}_{file.filename}"

    with open(upload_path, "wb") as out:
        shutil.copyfileobj(file.file, out)

    try:
        loaded = services.loader.load(upload_path, draft_id=draft_id, document_id=document_id, category=category)
    except DocumentLoaderError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if not loaded.success:
        raise HTTPException(status_code=400, detail="No text could be extracted from the document")

    try:
        chunks_added = services.vector_store.add_chunks(loaded.chunks)
    except VectorStoreError as e:
        logger.error(f"Indexing failed: {e}")
        raise HTTPException(status_code=500, detail=f"Indexing failed: {e}") from e

    return {
        "status": "success",
        "document_id": document_id,
        "file_name": file.filename,
        "category": category,
        "chunks": chunks_added,
    }


@app.delete("/drafts/{draft_id}/documents/{document_id}")
async def delete_document(
    draft_id: int,
    document_id: int,
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Remove a document's upload and its indexed chunks from a draft."""
    try:
        chunks_deleted = services.vector_store.delete_document(document_id, draft_id=draft_id)
    except VectorStoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete document: {e}") from e

    upload_dir = services.settings.data_uploads_dir / str(draft_id)
    uploads = list(upload_dir.glob(f"{document_id}_*")) if upload_dir.is_dir() else []
    for path in uploads:
        try:
            path.unlink()
        except OSError as e:
            logger.warning(f"Failed to delete upload {path}: {e}")

    if not chunks_deleted and not uploads:
        raise HTTPException(status_code=404, detail="Document not found")

    logger.info(f"Deleted document {document_id} from draft {draft_id} ({chunks_deleted} chunks)")
    return {
        "status": "success",
        "document_id": document_id,
        "chunks_deleted": chunks_deleted,
    }


# ============================================================================
# Conversation
# ============================================================================

@app.get("/drafts/{draft_id}/messages")
async def list_messages(
    draft_id: int,
    generation_id: str | None = None,
    services: Services = Depends(get_services),
) -> list[ConversationMessage]:
    """List the draft's chat messages, or one section thread's messages."""
    return services.store.list_messages(draft_id, generation_id=generation_id)


@app.post("/drafts/{draft_id}/chat")
async def chat(
    draft_id: int,
    request: ChatRequest,
    services: Services = Depends(get_services),
) -> ChatResponse:
    """
    Send a message in the drafting conversation.

    Both the user message and the reply are stored; the reply keeps the
    response metadata so later turns can tell which stages are done.
    """
    history = services.store.list_messages(draft_id)
    services.store.add_message(draft_id, MessageRole.USER, request.message)

    try:
        response = await services.orchestrator.handle_message(
            request.message,
            history,
            draft_id,
            current_phase=request.current_phase,
        )
    except OrchestrationError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    services.store.add_message(
        draft_id,
        MessageRole.ASSISTANT,
        response.message,
        metadata=response.metadata_json(),
    )
    return response


# ============================================================================
# Sections
# ============================================================================

@app.get("/drafts/{draft_id}/sections")
async def list_sections(
    draft_id: int,
    services: Services = Depends(get_services),
) -> list[OpinionSection]:
    """List the draft's sections in document order."""
    return services.store.list_sections(draft_id)


@app.post("/drafts/{draft_id}/sections")
async def create_manual_section(
    draft_id: int,
    request: ManualSectionRequest,
    services: Services = Depends(get_services),
) -> OpinionSection:
    """Add a section written by hand."""
    return services.store.add_section(
        draft_id,
        request.section_type,
        request.title,
        request.content,
        order=request.order,
        ai_generated=False,
    )


@app.put("/drafts/{draft_id}/sections")
async def reorder_sections(
    draft_id: int,
    request: ReorderRequest,
    services: Services = Depends(get_services),
) -> list[OpinionSection]:
    """Move sections to new positions; returns the draft's sections in the new order."""
    try:
        return services.store.reorder_sections(draft_id, {p.id: p.order for p in request.sections})
    except SectionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except OpinionStoreError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@app.put("/drafts/{draft_id}/sections/{section_id}")
async def update_section(
    draft_id: int,
    section_id: int,
    request: SectionUpdateRequest,
    services: Services = Depends(get_services),
) -> OpinionSection:
    """Edit a section's title or content, or mark it reviewed."""
    try:
        return services.store.update_section(
            draft_id,
            section_id,
            title=request.title,
            content=request.content,
            reviewed=request.reviewed,
        )
    except SectionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@app.delete("/drafts/{draft_id}/sections/{section_id}")
async def delete_section(
    draft_id: int,
    section_id: int,
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    try:
        services.store.delete_section(draft_id, section_id)
    except SectionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    return {"status": "success", "section_id": section_id}


@app.post("/drafts/{draft_id}/sections/{section_id}/regenerate")
async def regenerate_section(
    draft_id: int,
    section_id: int,
    services: Services = Depends(get_services),
) -> OpinionSection:
    """Redraft a stored section from the sections before it; clears its review flag."""
    section = services.store.get_section(section_id)
    if section is None or section.draft_id != draft_id:
        raise HTTPException(status_code=404, detail="Section not found")

    try:
        content = await services.section_generator.regenerate_content(section)
    except Exception as e:
        logger.error(f"Section regeneration failed for draft {draft_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Section regeneration failed: {e}") from e

    return services.store.update_section(
        draft_id,
        section_id,
        content=content,
        ai_generated=True,
        reviewed=False,
    )


@app.post("/drafts/{draft_id}/sections/start")
async def start_section(
    draft_id: int,
    request: StartSectionRequest,
    services: Services = Depends(get_services),
) -> SectionStart:
    """Begin drafting a section; returns the first question and thread state."""
    try:
        return await services.section_generator.start_section(
            request.section_type, draft_id, custom_title=request.custom_title
        )
    except GenerationError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.post("/drafts/{draft_id}/sections/answer")
async def answer_section_question(
    draft_id: int,
    request: AnswerRequest,
    services: Services = Depends(get_services),
) -> SectionAnswer:
    """Answer the current section question."""
    try:
        return await services.section_generator.answer_question(request.state, request.answer, draft_id)
    except SectionStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except GenerationError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.post("/drafts/{draft_id}/sections/generate")
async def generate_section(
    draft_id: int,
    request: GenerateRequest,
    services: Services = Depends(get_services),
) -> OpinionSection:
    """Generate the section from a completed thread and store it."""
    previous_sections = services.store.list_sections(draft_id)

    try:
        content = await services.section_generator.generate_content(request.state, draft_id, previous_sections)
    except SectionStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Section generation failed for draft {draft_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Section generation failed: {e}") from e

    return services.store.add_section(
        draft_id,
        request.state.section_type,
        section_title(request.state),
        content,
    )


@app.post("/drafts/{draft_id}/opinion")
async def draft_opinion(
    draft_id: int,
    services: Services = Depends(get_services),
) -> list[OpinionSection]:
    """Draft all five standard sections from the conversation and store them."""
    history = services.store.list_messages(draft_id)
    if not history:
        raise HTTPException(status_code=400, detail="No conversation to draft from")

    try:
        drafted = await services.orchestrator.draft_complete_opinion(history, draft_id)
    except OrchestrationError as e:
        cause = e.__cause__
        status = 502 if isinstance(cause, DraftingError) else 500
        raise HTTPException(status_code=status, detail=f"{e}: {cause}") from e

    return [
        services.store.add_section(draft_id, section.section_type.value, section.title, section.content)
        for section in drafted
    ]


@app.post("/drafts/{draft_id}/review")
async def review_opinion(
    draft_id: int,
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Review the stored draft and run the final quality check."""
    sections = services.store.list_sections(draft_id)
    if not sections:
        raise HTTPException(status_code=400, detail="Draft has no sections to review")

    try:
        feedback = await services.review.review_opinion(sections)
        quality_check = await services.review.final_quality_check(join_sections(sections))
    except ReviewError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e

    return {
        "feedback": feedback.model_dump(),
        "quality_check": quality_check.model_dump(),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
    )
