"""
Unit tests for work item field extraction.
"""

import pytest

from uat_router.extraction import (
    FIELD_MAP,
    HTML_FIELD_MAP,
    clean_html,
    extract_identity,
    extract_related_ids,
    extract_ticket_record,
    get_field,
    split_tags,
)
from uat_router.models import NO_COMMENTS, NOT_FOUND


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def work_item() -> dict:
    """Raw work item payload as returned with $expand=All."""
    return {
        "id": 12345,
        "url": "https://dev.azure.com/contoso/_apis/wit/workItems/12345",
        "fields": {
            "System.Title": "Quota increase for East US",
            "System.State": "Active",
            "System.AreaPath": "UAT\\Compute",
            "System.WorkItemType": "UAT",
            "System.TeamProject": "UAT",
            "System.Description": "<div>Need <b>200</b> cores&nbsp;in East US</div>",
            "System.AssignedTo": {
                "displayName": "Router Bot",
                "uniqueName": "router@contoso.com",
            },
            "System.CreatedBy": "Jane Doe <jane@contoso.com>",
            "System.Tags": "UAT; Blocked ;;Compute",
            "System.History": "<p>Pinged the DRI</p>",
            "Custom.Requestors": "jane@contoso.com",
            "Custom.CustomerImpact": "<p>Launch &amp; go-live at risk</p>",
            "Custom.Segment": "Strategic",
            "Custom.EstMonthlyUsageUSD": 25000.0,
            "Custom.MilestoneStatus": "",
        },
        "relations": [
            {
                "rel": "System.LinkTypes.Related",
                "url": "https://dev.azure.com/contoso/_apis/wit/workItems/111",
            },
            {
                "rel": "System.LinkTypes.Hierarchy-Forward",
                "url": "https://dev.azure.com/contoso/_apis/wit/workItems/222",
            },
            {
                "rel": "System.LinkTypes.Hierarchy-Reverse",
                "url": "https://dev.azure.com/contoso/_apis/wit/workItems/333",
            },
            {
                "rel": "AttachedFile",
                "url": "https://dev.azure.com/contoso/_apis/wit/attachments/abc",
            },
        ],
    }


# =============================================================================
# Field Helper Tests
# =============================================================================

class TestGetField:
    """Tests for single field reads."""

    def test_present(self):
        """Test a present value is returned as text."""
        assert get_field({"System.Title": "Hello"}, "System.Title") == "Hello"

    @pytest.mark.parametrize("fields", [{}, {"X": None}, {"X": ""}, {"X": False}])
    def test_missing_or_empty(self, fields: dict):
        """Test missing, null and empty values become NOT_FOUND."""
        assert get_field(fields, "X") == NOT_FOUND

    def test_integral_float(self):
        """Test integral floats render without a decimal part."""
        assert get_field({"X": 25000.0}, "X") == "25000"

    def test_numbers(self):
        """Test other numbers keep their representation."""
        assert get_field({"X": 7}, "X") == "7"
        assert get_field({"X": 1.5}, "X") == "1.5"

    @pytest.mark.parametrize("value", [0, 0.0])
    def test_zero_is_a_value(self, value):
        """Test a numeric zero is kept rather than reported missing."""
        assert get_field({"Custom.BACV": value}, "Custom.BACV") == "0"


class TestCleanHtml:
    """Tests for rich-text cleanup."""

    def test_strips_tags_and_entities(self):
        """Test tags are removed and entities decoded."""
        html = "<p>Hello&nbsp;<b>world</b> &amp; &lt;you&gt; &quot;hi&quot;</p>"
        assert clean_html(html) == 'Hello world & <you> "hi"'

    def test_collapses_whitespace(self):
        """Test runs of whitespace become one space."""
        assert clean_html("<div>a \n\n   b</div>\n") == "a b"

    def test_removes_box_characters(self):
        """Test box drawing and replacement characters are dropped."""
        assert clean_html("■ Item� one ●") == "Item one"

    @pytest.mark.parametrize("value", ["", NOT_FOUND])
    def test_passthrough(self, value: str):
        """Test empty and NOT_FOUND values are returned unchanged."""
        assert clean_html(value) == value


class TestExtractIdentity:
    """Tests for identity reduction."""

    def test_unique_name_preferred(self):
        """Test uniqueName wins over displayName."""
        identity = {"displayName": "Jane Doe", "uniqueName": "jane@contoso.com"}
        assert extract_identity(identity) == "jane@contoso.com"

    def test_display_name_fallback(self):
        """Test displayName is used when uniqueName is absent."""
        assert extract_identity({"displayName": "Jane Doe"}) == "Jane Doe"

    def test_bracketed_email(self):
        """Test the email is taken from 'Name <email>' strings."""
        assert extract_identity("Jane Doe <jane@contoso.com>") == "jane@contoso.com"

    def test_plain_string(self):
        """Test a plain string is returned as-is."""
        assert extract_identity("Jane Doe") == "Jane Doe"

    @pytest.mark.parametrize("identity", [None, "", {}, {"id": "abc"}, NOT_FOUND])
    def test_missing(self, identity):
        """Test unusable identities become NOT_FOUND."""
        assert extract_identity(identity) == NOT_FOUND


class TestRelationsAndTags:
    """Tests for related ids and tag splitting."""

    def test_related_ids(self, work_item: dict):
        """Test only related and child links are kept, in order."""
        assert extract_related_ids(work_item["relations"]) == ["111", "222"]

    def test_related_ids_without_trailing_number(self):
        """Test links whose URL does not end in an id are skipped."""
        relations = [{"rel": "System.LinkTypes.Related", "url": "https://x/items/abc"}]
        assert extract_related_ids(relations) == []

    def test_split_tags(self):
        """Test tags are trimmed and empty segments dropped."""
        assert split_tags("UAT; Blocked ;;Compute") == ["UAT", "Blocked", "Compute"]

    @pytest.mark.parametrize("raw", [None, "", NOT_FOUND])
    def test_split_tags_missing(self, raw):
        """Test missing tags give an empty list."""
        assert split_tags(raw) == []


# =============================================================================
# Record Extraction Tests
# =============================================================================

class TestExtractTicketRecord:
    """Tests for full record extraction."""

    def test_basic_fields(self, work_item: dict):
        """Test plain fields are copied."""
        record = extract_ticket_record(work_item)

        assert record.id == "12345"
        assert record.url == work_item["url"]
        assert record.title == "Quota increase for East US"
        assert record.state == "Active"
        assert record.segment == "Strategic"
        assert record.estimated_monthly_usage == "25000"

    def test_html_fields_cleaned(self, work_item: dict):
        """Test rich-text fields become plain text."""
        record = extract_ticket_record(work_item)

        assert record.description == "Need 200 cores in East US"
        assert record.customer_impact == "Launch & go-live at risk"
        assert record.customer_scenario == NOT_FOUND

    def test_identity_fields(self, work_item: dict):
        """Test identity fields are reduced."""
        record = extract_ticket_record(work_item)

        assert record.assigned_to == "router@contoso.com"
        assert record.created_by == "jane@contoso.com"
        assert record.changed_by == NOT_FOUND

    def test_empty_value_is_not_found(self, work_item: dict):
        """Test an empty string field is reported missing."""
        assert extract_ticket_record(work_item).milestone_status == NOT_FOUND

    def test_relations_tags_comments(self, work_item: dict):
        """Test list fields and history comments."""
        record = extract_ticket_record(work_item)

        assert record.related_work_items == ["111", "222"]
        assert record.tags == ["UAT", "Blocked", "Compute"]
        assert record.comments == "Pinged the DRI"

    def test_timestamp_set(self, work_item: dict):
        """Test an extraction timestamp is recorded."""
        assert extract_ticket_record(work_item).timestamp

    def test_empty_payload(self):
        """Test every mapped field is NOT_FOUND when nothing is present."""
        record = extract_ticket_record({"id": 1, "fields": {}})

        for attr, _ in FIELD_MAP + HTML_FIELD_MAP:
            assert getattr(record, attr) == NOT_FOUND, attr
        assert record.url == NOT_FOUND
        assert record.related_work_items == []
        assert record.tags == []
        assert record.comments == NO_COMMENTS

    def test_no_fields_key(self):
        """Test a payload without fields or relations."""
        record = extract_ticket_record({"id": 9})
        assert record.id == "9"
        assert record.title == NOT_FOUND

    def test_has(self, work_item: dict):
        """Test presence checks on the extracted record."""
        record = extract_ticket_record(work_item)
        assert record.has("title") is True
        assert record.has("milestone_status") is False
