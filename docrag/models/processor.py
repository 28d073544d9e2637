"""Orchestrator step contract shared by the direct and durable runners."""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from docrag.models.document import DocumentStatus


class StepModel(BaseModel):
    """camelCase step payloads, as sent by the state machine."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StepError(StepModel):
    """Failure details carried by updateStatus(FAILED)."""

    message: str
    code: Optional[str] = None


class DocumentPayload(StepModel):
    document_id: str = Field(..., min_length=1)


class ExtractPayload(DocumentPayload):
    bucket: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1)


class EmbedPayload(DocumentPayload):
    chunks_ref: str = Field(..., min_length=1)


class UpdateStatusStep(StepModel):
    action: Literal["updateStatus"]
    status: DocumentStatus
    error: Optional[StepError] = None
    payload: DocumentPayload


class ExtractAndChunkStep(StepModel):
    action: Literal["extractAndChunk"]
    payload: ExtractPayload


class EmbedAndUpsertStep(StepModel):
    action: Literal["embedAndUpsert"]
    payload: EmbedPayload


ProcessorStep = Annotated[
    Union[UpdateStatusStep, ExtractAndChunkStep, EmbedAndUpsertStep],
    Field(discriminator="action"),
]

processor_step_adapter: TypeAdapter = TypeAdapter(ProcessorStep)


class UpdateStatusResult(StepModel):
    document_id: str
    status: DocumentStatus


class ExtractAndChunkResult(StepModel):
    document_id: str
    chunks_ref: str
    chunk_count: int


class EmbedAndUpsertResult(StepModel):
    document_id: str
    vector_count: int


StepResult = Union[UpdateStatusResult, ExtractAndChunkResult, EmbedAndUpsertResult]
