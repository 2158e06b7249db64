"""
Prompt construction for routing recommendations.

The prompt is the static routing template followed by a data section built
from the work item. Fields without a value are left out of the data section
rather than rendered as placeholders.
"""

import logging
from pathlib import Path
from typing import Optional

from .models import NO_COMMENTS, NOT_FOUND, UNKNOWN, ResolvedIdentity, TicketRecord


logger = logging.getLogger(__name__)


DEFAULT_TEMPLATE_PATH = Path(__file__).parent / "prompts" / "routing_prompt.txt"

# (label, record attribute) in data section order
PROMPT_FIELDS_BEFORE_IDENTITY: list[tuple[str, str]] = [
    ("Work Item ID", "id"),
    ("Title", "title"),
    ("Description", "description"),
    ("Requestors", "requestors"),
]

PROMPT_FIELDS_AFTER_IDENTITY: list[tuple[str, str]] = [
    ("Customer Impact", "customer_impact"),
    ("Customer Scenario & Desired Outcome", "customer_scenario"),
    ("Desired Outcome", "desired_outcome"),
    ("Segment", "segment"),
    ("Milestone Status", "milestone_status"),
    ("Milestone Reason", "milestone_reason"),
    ("Workload", "milestone_workload"),
    ("Help Needed", "help_needed"),
    ("Customer Commitment", "customer_commitment"),
    ("Azure Preferred Region", "azure_preferred_region"),
    ("Estimated Monthly Usage", "estimated_monthly_usage"),
    ("Solution Area", "solution_area"),
]

SIMPLIFIED_FIELDS: list[tuple[str, str]] = [
    ("Work Item ID", "id"),
    ("Title", "title"),
    ("Requestors", "requestors"),
    ("Milestone Status", "milestone_status"),
    ("Customer Commitment", "customer_commitment"),
    ("Help Needed", "help_needed"),
]

KEY_FIELDS = (
    "id",
    "title",
    "requestors",
    "milestone_status",
    "milestone_reason",
    "customer_commitment",
    "help_needed",
    "solution_area",
    "segment",
)


class PromptBuilderError(Exception):
    """Error loading the prompt template."""
    pass


def _labeled(label: str, value: str) -> str:
    return f"**{label}:** {value}\n\n"


def _present(value: Optional[str]) -> bool:
    return bool(value) and value != NOT_FOUND


class PromptBuilder:
    """
    Builds routing prompts from work item records.

    The template is read once when the builder is created.
    """

    def __init__(self, template_path: Optional[Path] = None):
        """
        Initialize the builder.

        Args:
            template_path: Template file; defaults to the packaged template.

        Raises:
            PromptBuilderError: If the template cannot be read.
        """
        path = template_path or DEFAULT_TEMPLATE_PATH
        try:
            self._template = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Error loading prompt template {path}: {e}")
            raise PromptBuilderError(f"Failed to load prompt template: {path}") from e

        logger.debug(f"Loaded prompt template from {path} ({len(self._template)} chars)")

    @property
    def template(self) -> str:
        return self._template

    def build_data_section(
        self,
        record: TicketRecord,
        identity: Optional[ResolvedIdentity] = None,
    ) -> str:
        """
        Render the labeled data lines for a work item.

        Args:
            record: Normalized work item.
            identity: Resolved requestor identity, if any.

        Returns:
            Data section text.
        """
        parts: list[str] = []

        for label, attr in PROMPT_FIELDS_BEFORE_IDENTITY:
            value = getattr(record, attr)
            if _present(value):
                parts.append(_labeled(label, value))

        if identity is not None:
            parts.append(
                "**Requestor Identity:**\n"
                f"- Email: {identity.email}\n"
                f"- Name: {identity.name}\n"
                f"- Title: {identity.title}\n"
                f"- Team: {identity.team.value}\n\n"
            )

        for label, attr in PROMPT_FIELDS_AFTER_IDENTITY:
            value = getattr(record, attr)
            if _present(value):
                parts.append(_labeled(label, value))

        if _present(record.comments) and record.comments != NO_COMMENTS:
            parts.append(f"**Comments:**\n{record.comments}\n\n")

        if record.related_work_items:
            parts.append(_labeled("Related Work Items", ", ".join(record.related_work_items)))

        if _present(record.url):
            parts.append(_labeled("URL", record.url))

        return "".join(parts)

    def build_prompt(
        self,
        record: TicketRecord,
        identity: Optional[ResolvedIdentity] = None,
    ) -> str:
        """
        Build the full routing prompt.

        Args:
            record: Normalized work item.
            identity: Resolved requestor identity, if any.

        Returns:
            Template followed by the data section.
        """
        return self._template + "\n" + self.build_data_section(record, identity)

    def build_simplified_prompt(self, record: TicketRecord) -> str:
        """
        Build a prompt with a fixed set of six fields.

        Unlike ``build_prompt``, every line is always emitted and missing
        values read ``UNKNOWN``.
        """
        lines = []
        for label, attr in SIMPLIFIED_FIELDS:
            value = getattr(record, attr)
            lines.append(f"**{label}:** {value if _present(value) else UNKNOWN}")
        return self._template + "\n\n" + "\n".join(lines) + "\n"


def extract_key_fields(record: TicketRecord) -> dict[str, str]:
    """Get the fields most useful for a quick look at a work item."""
    return {attr: getattr(record, attr) for attr in KEY_FIELDS}
