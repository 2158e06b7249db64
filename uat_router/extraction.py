"""
Field extraction for Azure DevOps work items.

Maps the sparse ``fields`` / ``relations`` payload of a work item onto the
fixed ``TicketRecord`` schema:
- Missing or empty values become ``NOT_FOUND``
- Rich-text fields are reduced to plain text
- Identity fields are reduced to an account name or email
- Related links are reduced to work item ids
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from .models import NOT_FOUND, NO_COMMENTS, TicketRecord


logger = logging.getLogger(__name__)


# (record attribute, source reference name)
FIELD_MAP: list[tuple[str, str]] = [
    ("title", "System.Title"),
    ("state", "System.State"),
    ("sub_state", "Custom.SubState"),
    ("area_path", "System.AreaPath"),
    ("iteration", "System.IterationPath"),
    ("work_item_type", "System.WorkItemType"),
    ("conversation_id", "Custom.ConversationID"),
    ("ref_id", "Custom.RefID"),
    ("action_category", "Custom.ActionCategory"),
    ("requestors", "Custom.Requestors"),
    ("meeting_type", "Custom.MeetingType"),
    ("account", "Custom.Account"),
    ("account_id", "Custom.AccountID"),
    ("tpid", "Custom.TPID"),
    ("area", "Custom.Area"),
    ("country", "Custom.Country"),
    ("eou", "Custom.EOU"),
    ("industry", "Custom.Industry"),
    ("segment", "Custom.Segment"),
    ("subsegment", "Custom.Subsegment"),
    ("opportunity_id", "Custom.OpportunityID"),
    ("opportunity_name", "Custom.OpportunityName"),
    ("opportunity_stage", "Custom.OpportunityStage"),
    ("opportunity_size", "Custom.OpportunitySize"),
    ("opportunity_outcome", "Custom.OpportunityOutcome"),
    ("product_opportunity_size", "Custom.ProductOpportunitySize"),
    ("solution_area", "Custom.SolutionArea"),
    ("sales_play", "Custom.SalesPlay"),
    ("partner_one_id", "Custom.PartnerOneID"),
    ("milestone_id", "Custom.MilestoneID"),
    ("milestone_status", "Custom.MilestoneStatus"),
    ("milestone_reason", "Custom.MilestoneReason"),
    ("milestone_activations", "Custom.MilestoneActivations"),
    ("milestone_workload", "Custom.MilestoneWorkload"),
    ("help_needed", "Custom.HelpNeeded"),
    ("estimated_billed_revenue", "Custom.EstimatedBilledRevenue"),
    ("estimated_billed_revenue_usd", "Custom.EstBilledRevenueUSD"),
    ("estimated_monthly_usage", "Custom.EstMonthlyUsageUSD"),
    ("bacv", "Custom.BACV"),
    ("azure_preferred_region", "Custom.AzurePreferredRegion"),
    ("customer_commitment", "Custom.CustomerCommitment"),
    ("microsoft_service_regions", "Custom.MicrosoftServiceRegions"),
    ("created_date", "System.CreatedDate"),
    ("changed_date", "System.ChangedDate"),
    ("project", "System.TeamProject"),
]

# Rich-text fields cleaned down to plain text
HTML_FIELD_MAP: list[tuple[str, str]] = [
    ("description", "System.Description"),
    ("customer_impact", "Custom.CustomerImpact"),
    ("customer_scenario", "Custom.CustomerScenarioDesiredOutcome"),
    ("desired_outcome", "Custom.DesiredOutcome"),
]

IDENTITY_FIELD_MAP: list[tuple[str, str]] = [
    ("assigned_to", "System.AssignedTo"),
    ("created_by", "System.CreatedBy"),
    ("changed_by", "System.ChangedBy"),
]

RELATED_LINK_TYPES = (
    "System.LinkTypes.Related",
    "System.LinkTypes.Hierarchy-Forward",
)

_TAG_RE = re.compile(r"<[^>]*>")
_ENTITIES = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
    ("&quot;", '"'),
)
# Geometric shapes block and the replacement character
_BOX_CHARS_RE = re.compile("[\u25A0-\u25FF\uFFFD]")
_WHITESPACE_RE = re.compile(r"\s+")
_BRACKETED_EMAIL_RE = re.compile(r"<([^>]+)>")
_TRAILING_ID_RE = re.compile(r"/(\d+)$")


def _to_text(value: Any) -> str:
    """Render a raw field value as a string (integral floats without '.0')."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def get_field(fields: dict[str, Any], name: str) -> str:
    """
    Read a field, substituting NOT_FOUND for missing or empty values.

    Args:
        fields: Raw ``fields`` map of a work item.
        name: Reference name of the field.

    Returns:
        Field value as text, or NOT_FOUND.
    """
    value = fields.get(name)
    if value is None or value == "" or value is False:
        return NOT_FOUND
    return _to_text(value)


def clean_html(html: str) -> str:
    """
    Convert rich-text HTML into a single line of plain text.

    Tags are removed, a small set of entities decoded, box drawing and
    replacement characters dropped, and whitespace collapsed.
    """
    if not html or html == NOT_FOUND:
        return html

    text = _TAG_RE.sub("", html)
    for entity, replacement in _ENTITIES:
        text = text.replace(entity, replacement)
    text = _BOX_CHARS_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def extract_identity(identity: Any) -> str:
    """
    Reduce an identity field to an account name or email.

    Identity objects prefer ``uniqueName`` over ``displayName``; strings of
    the form ``"Display Name <email>"`` yield the bracketed email.
    """
    if not identity or identity == NOT_FOUND:
        return NOT_FOUND

    if isinstance(identity, str):
        match = _BRACKETED_EMAIL_RE.search(identity)
        if match:
            return match.group(1)
        return identity

    if isinstance(identity, dict):
        if identity.get("uniqueName"):
            return str(identity["uniqueName"])
        if identity.get("displayName"):
            return str(identity["displayName"])

    return NOT_FOUND


def extract_related_ids(relations: list[dict[str, Any]]) -> list[str]:
    """Collect ids of related and child work items from relation links."""
    ids = []
    for relation in relations:
        if not isinstance(relation, dict):
            continue
        if relation.get("rel") not in RELATED_LINK_TYPES:
            continue
        match = _TRAILING_ID_RE.search(str(relation.get("url", "")))
        if match:
            ids.append(match.group(1))
    return ids


def split_tags(raw: Optional[str]) -> list[str]:
    """Split a ``;`` separated tag string into trimmed tags."""
    if not raw or raw == NOT_FOUND:
        return []
    return [tag.strip() for tag in raw.split(";") if tag.strip()]


def extract_comments(fields: dict[str, Any]) -> str:
    """Seed comments from the work item history field."""
    history = fields.get("System.History")
    if history:
        return clean_html(str(history))
    return NO_COMMENTS


def extract_ticket_record(work_item: dict[str, Any]) -> TicketRecord:
    """
    Build a normalized TicketRecord from a raw work item payload.

    Args:
        work_item: Work item JSON as returned by the tracker API.

    Returns:
        TicketRecord with every recognized field populated.
    """
    fields = work_item.get("fields") or {}
    relations = work_item.get("relations") or []

    values: dict[str, Any] = {
        "id": _to_text(work_item.get("id", NOT_FOUND)),
        "url": work_item.get("url") or NOT_FOUND,
    }

    for attr, name in FIELD_MAP:
        values[attr] = get_field(fields, name)

    for attr, name in HTML_FIELD_MAP:
        values[attr] = clean_html(get_field(fields, name))

    for attr, name in IDENTITY_FIELD_MAP:
        values[attr] = extract_identity(fields.get(name))

    values["related_work_items"] = extract_related_ids(relations)
    values["comments"] = extract_comments(fields)
    values["tags"] = split_tags(fields.get("System.Tags"))
    values["timestamp"] = datetime.now(timezone.utc).isoformat()

    record = TicketRecord(**values)
    logger.debug(
        f"Extracted work item {record.id}: "
        f"{sum(1 for attr, _ in FIELD_MAP if record.has(attr))}/{len(FIELD_MAP)} fields present"
    )
    return record
