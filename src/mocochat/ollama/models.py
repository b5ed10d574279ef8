"""Request and response models for the Ollama HTTP API."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..chat.json_value import JSONValue, as_int, find_by_suffix


class ChatRequestOptions(BaseModel):
    """Model options of a chat request (only the fields that are set are sent)."""

    num_keep: int | None = None
    seed: int | None = None
    num_predict: int | None = None
    top_k: int | None = None
    top_p: float | None = None
    min_p: float | None = None
    typical_p: float | None = None
    repeat_last_n: int | None = None
    temperature: float | None = Field(default=None, ge=0.0)
    repeat_penalty: float | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    penalize_newline: bool | None = None
    stop: list[str] | None = None
    numa: bool | None = None
    num_ctx: int | None = Field(default=None, ge=1)
    num_batch: int | None = None
    num_gpu: int | None = None
    main_gpu: int | None = None
    use_mmap: bool | None = None
    num_thread: int | None = None

    model_config = ConfigDict(extra="forbid")


class JSONSchemaProperty(BaseModel):
    type: str
    description: str | None = None
    enum: list[str] | None = None


class JSONSchema(BaseModel):
    type: str = "object"
    properties: dict[str, JSONSchemaProperty] | None = None
    required: list[str] | None = None


class ToolFunctionDefinition(BaseModel):
    name: str
    description: str | None = None
    parameters: JSONSchema | None = None


class ToolDefinition(BaseModel):
    """A tool offered to the model."""

    type: str = "function"
    function: ToolFunctionDefinition


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``."""

    model: str = Field(min_length=1)
    messages: list[dict[str, Any]] = Field(description="Messages in wire form")
    stream: bool = True
    think: bool | None = None
    options: ChatRequestOptions | None = None
    tools: list[ToolDefinition] | None = None
    keep_alive: str | None = Field(default=None, description="How long the model stays loaded, e.g. '5m'")

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready body with unset fields omitted."""
        return self.model_dump(mode="json", exclude_none=True)


class ModelDetailsInfo(BaseModel):
    """The ``details`` block shared by ``/api/tags`` and ``/api/show``."""

    model_config = ConfigDict(extra="ignore")

    parent_model: str | None = None
    format: str | None = None
    family: str | None = None
    families: list[str] | None = None
    parameter_size: str | None = None
    quantization_level: str | None = None


class ModelDetails(BaseModel):
    """Response of ``POST /api/show``."""

    model_config = ConfigDict(extra="ignore")

    license: str | None = None
    modelfile: str | None = None
    parameters: str | None = None
    template: str | None = None
    details: ModelDetailsInfo | None = None
    model_info: dict[str, JSONValue] | None = None
    capabilities: list[str] | None = None

    @property
    def context_length(self) -> int | None:
        """Maximum context window, read from ``<arch>.context_length``."""
        return as_int(find_by_suffix(self.model_info, ".context_length"))

    @property
    def supports_thinking(self) -> bool:
        return "thinking" in (self.capabilities or [])

    @property
    def is_embedding_only(self) -> bool:
        """True for models that can only produce embeddings.

        Capabilities decide when the server reports them; older servers
        only expose the model family.
        """
        caps = self.capabilities or []
        if caps:
            return all(c.lower() in ("embedding", "embeddings") for c in caps)
        families = self.details.families if self.details and self.details.families else []
        if families:
            return len(families) == 1 and families[0].lower() == "embedding"
        return False


class ModelSummary(BaseModel):
    """One entry of ``GET /api/tags``."""

    model_config = ConfigDict(extra="ignore")

    name: str
    model: str | None = None
    modified_at: str | None = None
    size: int = 0
    digest: str | None = None
    details: ModelDetailsInfo | None = None
    capabilities: list[str] | None = None


class ModelList(BaseModel):
    models: list[ModelSummary] = Field(default_factory=list)
