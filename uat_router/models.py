"""
Data models for the UAT Routing Service.

Uses Pydantic for robust data validation and serialization.
Records are immutable so one request can never leak state into another.
"""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# Placeholder for a work item field with no value
NOT_FOUND = "Not found"

# Placeholder for a routing summary value the model did not provide
UNKNOWN = "UNKNOWN"

NO_COMMENTS = "No comments available"


class Team(str, Enum):
    """Team classification derived from a job title."""

    CSU = "CSU"
    STU = "STU"
    UNKNOWN = "UNKNOWN"


class TicketRecord(BaseModel):
    """
    Normalized snapshot of an Azure DevOps UAT work item.

    Every scalar field holds either the source value or ``NOT_FOUND``,
    never ``None``, so consumers do not have to branch on missing data.
    """

    id: str = Field(..., description="Work item id")
    url: str = NOT_FOUND

    # Basic fields
    title: str = NOT_FOUND
    assigned_to: str = NOT_FOUND
    state: str = NOT_FOUND
    sub_state: str = NOT_FOUND
    area_path: str = NOT_FOUND
    iteration: str = NOT_FOUND
    work_item_type: str = NOT_FOUND

    # Description and content
    description: str = NOT_FOUND

    # Business context
    conversation_id: str = NOT_FOUND
    ref_id: str = NOT_FOUND
    action_category: str = NOT_FOUND
    requestors: str = NOT_FOUND
    meeting_type: str = NOT_FOUND

    # Account & customer
    account: str = NOT_FOUND
    account_id: str = NOT_FOUND
    tpid: str = NOT_FOUND
    area: str = NOT_FOUND
    country: str = NOT_FOUND
    eou: str = NOT_FOUND
    industry: str = NOT_FOUND
    segment: str = NOT_FOUND
    subsegment: str = NOT_FOUND

    # Opportunity
    opportunity_id: str = NOT_FOUND
    opportunity_name: str = NOT_FOUND
    opportunity_stage: str = NOT_FOUND
    opportunity_size: str = NOT_FOUND
    opportunity_outcome: str = NOT_FOUND
    product_opportunity_size: str = NOT_FOUND
    solution_area: str = NOT_FOUND
    sales_play: str = NOT_FOUND
    partner_one_id: str = NOT_FOUND

    # Milestone
    milestone_id: str = NOT_FOUND
    milestone_status: str = NOT_FOUND
    milestone_reason: str = NOT_FOUND
    milestone_activations: str = NOT_FOUND
    milestone_workload: str = NOT_FOUND

    # Technical & revenue
    help_needed: str = NOT_FOUND
    estimated_billed_revenue: str = NOT_FOUND
    estimated_billed_revenue_usd: str = NOT_FOUND
    estimated_monthly_usage: str = NOT_FOUND
    bacv: str = NOT_FOUND
    azure_preferred_region: str = NOT_FOUND
    customer_commitment: str = NOT_FOUND
    microsoft_service_regions: str = NOT_FOUND

    # Customer impact (rich text, cleaned)
    customer_impact: str = NOT_FOUND
    customer_scenario: str = NOT_FOUND
    desired_outcome: str = NOT_FOUND

    # Metadata
    created_date: str = NOT_FOUND
    changed_date: str = NOT_FOUND
    created_by: str = NOT_FOUND
    changed_by: str = NOT_FOUND
    project: str = NOT_FOUND

    # Relations
    related_work_items: list[str] = Field(default_factory=list)
    comments: str = NO_COMMENTS
    tags: list[str] = Field(default_factory=list)

    # Extraction time (ISO-8601, UTC)
    timestamp: str = ""

    model_config = {"frozen": True}

    def has(self, field_name: str) -> bool:
        """Check if a scalar field carries a real value."""
        value = getattr(self, field_name, None)
        return bool(value) and value != NOT_FOUND


class ResolvedIdentity(BaseModel):
    """Directory enrichment of a requestor."""

    email: str = UNKNOWN
    name: str = UNKNOWN
    title: str = UNKNOWN
    department: str = UNKNOWN
    team: Team = Team.UNKNOWN
    error: Optional[str] = Field(
        default=None,
        description="Lookup failure message when the identity is partial"
    )

    model_config = {"frozen": True}


class _CamelModel(BaseModel):
    """Base for models exposed over HTTP with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class RoutingDecision(_CamelModel):
    """
    Routing decision reported by the model.

    ``None`` means the completion carried no information for that field;
    it is intentionally distinct from the ``UNKNOWN`` placeholder.
    """

    tag: Optional[str] = None
    assigned_to: Optional[str] = None
    priority: Optional[str] = None
    triage_type: Optional[str] = None
    area_path: Optional[str] = None


class _SummaryModel(_CamelModel):
    """Summary group whose fields always hold a value."""

    @field_validator("*", mode="before")
    @classmethod
    def default_unknown(cls, v: Any) -> Any:
        """Replace missing or empty values with UNKNOWN."""
        if v is None or v == "":
            return UNKNOWN
        return v


class ServiceSummary(_SummaryModel):
    name: str = UNKNOWN
    solution_area: str = UNKNOWN
    dri: str = UNKNOWN


class RequestorSummary(_SummaryModel):
    email: str = UNKNOWN
    name: str = UNKNOWN
    title: str = UNKNOWN
    team: str = UNKNOWN


class MilestoneSummary(_SummaryModel):
    status: str = UNKNOWN
    reason: str = UNKNOWN
    commitment: str = UNKNOWN


class RoutingResult(_CamelModel):
    """
    Typed routing decision extracted from a model completion.

    Attributes:
        routing: Routing decision (fields may be None).
        service: Service attribution (always populated).
        requestor: Requestor summary (always populated).
        milestone: Milestone summary (always populated).
        reasoning: Ordered reasoning bullets.
        ask: Ordered asks for the requestor.
        raw_completion_text: Unmodified model output, kept for audit.
        parse_error: Set only when the completion could not be parsed.
        full_json: The complete parsed JSON object, when there was one.
    """

    routing: RoutingDecision = Field(default_factory=RoutingDecision)
    service: ServiceSummary = Field(default_factory=ServiceSummary)
    requestor: RequestorSummary = Field(default_factory=RequestorSummary)
    milestone: MilestoneSummary = Field(default_factory=MilestoneSummary)
    reasoning: list[str] = Field(default_factory=list)
    ask: list[str] = Field(default_factory=list)
    raw_completion_text: str = ""
    parse_error: Optional[str] = None
    full_json: Optional[dict[str, Any]] = None

    @property
    def is_parse_error(self) -> bool:
        """Check if normalization fell back to the failure shape."""
        return self.parse_error is not None


class TokenUsage(_CamelModel):
    """Token accounting reported by the completion endpoint."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class CompletionResult(BaseModel):
    """Raw completion text plus usage."""

    text: str
    usage: TokenUsage = Field(default_factory=TokenUsage)

    model_config = {"frozen": True}


# =============================================================================
# HTTP envelopes
# =============================================================================

def _id_to_str(v: Any) -> Any:
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    if isinstance(v, str):
        return v.strip()
    return v


class RoutingRequest(BaseModel):
    """Body of a single-item routing request."""

    id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("id", "workItemId"),
    )
    project: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _id_to_str(v)


class BatchRoutingRequest(BaseModel):
    """Body of a batch routing request."""

    ids: list[str] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("ids", "workItemIds"),
    )
    project: Optional[str] = None

    @field_validator("ids", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [_id_to_str(item) for item in v]
        return v


class RoutingResponse(_CamelModel):
    """Routing result for one work item, as returned to callers."""

    success: bool = True
    id: str
    routing: RoutingDecision
    service: ServiceSummary
    requestor: RequestorSummary
    milestone: MilestoneSummary
    reasoning: list[str] = Field(default_factory=list)
    ask: list[str] = Field(default_factory=list)
    raw_completion_text: str = ""
    parse_error: Optional[str] = None
    usage: Optional[TokenUsage] = None
    timestamp: str


class BatchItemError(_CamelModel):
    """Failure entry for one work item of a batch."""

    success: bool = False
    id: str
    error: str


class BatchResponse(_CamelModel):
    """Ordered results of a batch request."""

    success: bool = True
    total: int
    results: list[Union[RoutingResponse, BatchItemError]] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = "healthy"
    timestamp: str
    version: str


class ErrorResponse(BaseModel):
    """Generic error envelope."""

    success: bool = False
    error: str
    stack: Optional[str] = None
