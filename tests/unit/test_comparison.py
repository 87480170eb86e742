"""Unit tests for pre/post comparison assembly."""
from datetime import date

import pytest

from src.lift_core.insights.aggregation import aggregate_records
from src.lift_core.insights.comparison import build_comparison, outer_join
from src.lift_core.insights.date_ranges import DateRange
from src.lift_core.schemas.report import Degradation


PRE = DateRange(date(2024, 11, 1), date(2024, 11, 30))
POST = DateRange(date(2024, 12, 1), date(2024, 12, 31))


def _row(campaign, spend, conversions=0, value=0.0, **extra):
    row = {
        "spend": str(spend),
        "impressions": "1000",
        "clicks": "50",
        "campaign_name": campaign,
        "actions": [{"action_type": "purchase", "value": str(conversions)}],
        "action_values": [{"action_type": "purchase", "value": str(value)}],
    }
    row.update(extra)
    return row


def _build(pre_records, post_records, **kwargs):
    pre = aggregate_records(pre_records, "purchase")
    post = aggregate_records(post_records, "purchase")
    return build_comparison(
        pre, post, event_name="purchase", pre_range=PRE, post_range=POST, **kwargs
    )


def test_outer_join_covers_both_sides():
    """Test every key appears once with a zero-valued missing side."""
    pre = aggregate_records([_row("Old", 10), _row("Both", 5)], "purchase")
    post = aggregate_records([_row("Both", 7), _row("New", 3)], "purchase")

    pairs = outer_join(pre.campaigns, post.campaigns)

    assert [pre_group.key for pre_group, _ in pairs] == ["Old", "Both", "New"]
    old_pre, old_post = pairs[0]
    assert old_post.spend == 0
    assert old_post.labels == {"name": "Old"}
    new_pre, new_post = pairs[2]
    assert new_pre.spend == 0
    assert new_post.spend == pytest.approx(3.0)


def test_campaign_only_in_pre_period():
    """Test a campaign present only in pre has zero post metrics."""
    report = _build([_row("OldCampaign", 100, 4, 200.0)], [_row("NewCampaign", 50)])

    campaigns = {row.name: row for row in report.performance.campaigns}
    assert campaigns["OldCampaign"].pre_spend == pytest.approx(100.0)
    assert campaigns["OldCampaign"].post_spend == 0
    assert campaigns["OldCampaign"].post_conversions == 0
    assert campaigns["OldCampaign"].post_roas == 0
    assert campaigns["OldCampaign"].pre_roas == pytest.approx(2.0)
    assert campaigns["NewCampaign"].pre_spend == 0


def test_identical_periods_have_no_change():
    """Test identical data in both periods yields equal ROAS and zero change."""
    records = [_row("A", 100, 10, 500.0)]

    report = _build(records, records)

    assert report.overview.pre_roas == report.overview.post_roas
    assert report.overview.pre_roas == pytest.approx(5.0)
    assert all(change == 0 for change in report.changes.values())


def test_entity_rows_ranked_and_capped():
    """Test campaign rows are ordered by combined spend and truncated."""
    pre_records = [_row(f"C{index}", index + 1) for index in range(25)]

    report = _build(pre_records, [])

    names = [row.name for row in report.performance.campaigns]
    assert len(names) == 20
    assert names[0] == "C24"
    assert names[-1] == "C5"


def test_unbounded_caps():
    """Test None caps keep every row."""
    pre_records = [_row(f"C{index}", index + 1) for index in range(25)]

    report = _build(pre_records, [], top_campaigns=None)

    assert len(report.performance.campaigns) == 25


def test_meta_acr_uses_post_period():
    """Test metaACR is post conversions over post clicks as a percentage."""
    report = _build([_row("A", 10, 1)], [_row("A", 10, 5)])

    assert report.summary_totals.meta_acr == pytest.approx(10.0)


def test_meta_acr_zero_without_conversions():
    """Test metaACR is zero when the post period has no conversions."""
    report = _build([_row("A", 10, 1)], [_row("A", 10, 0)])

    assert report.summary_totals.meta_acr == 0


def test_breakdown_rows_joined():
    """Test country and device rows include keys from either period."""
    pre = [_row("A", 10, country="US", region="California", device_platform="mobile")]
    post = [_row("A", 20, country="CA", device_platform="desktop")]

    report = _build(pre, post)

    countries = {row.country: row for row in report.geographic}
    assert countries["US"].post_spend == 0
    assert countries["US"].region == "California"
    assert countries["CA"].pre_spend == 0
    assert {row.platform for row in report.devices} == {"mobile", "desktop"}


def test_wire_format_uses_camel_case():
    """Test serialized report exposes stable camelCase keys."""
    report = _build(
        [_row("A", 10, 1, 20.0, age="18-24", gender="male")],
        [_row("A", 12, 2, 30.0)],
        data_availability={"countries": False},
        degradations=[
            Degradation(dimension="countries", period="pre", reason="unavailable", message="boom")
        ],
    )

    wire = report.to_wire()

    assert wire["eventName"] == "purchase"
    assert wire["preStartDate"] == "2024-11-01"
    assert "metaACR" in wire["summaryTotals"]
    assert "preConversionValue" in wire["summaryTotals"]
    assert "adSets" in wire["performance"]
    assert "topAds" in wire["performance"]
    assert wire["audience"]["ageGender"][0]["age"] == "18-24"
    assert wire["dataAvailability"]["countries"] is False
    assert wire["dataAvailability"]["campaigns"] is True
    assert wire["degradations"][0]["reason"] == "unavailable"
    assert "costPerConversion" in wire["changes"]
    assert "preWebsiteValue" in wire["valueChannels"]


def test_dimension_names_camel_cased_on_wire():
    """Test availability keys and degradation dimensions follow wire casing."""
    report = _build(
        [_row("A", 10)],
        [_row("A", 10)],
        data_availability={"ad_sets": False, "age_gender": False},
        degradations=[
            Degradation(dimension="age_gender", period="post", reason="truncated", message="cap")
        ],
    )

    wire = report.to_wire()

    assert wire["dataAvailability"]["adSets"] is False
    assert wire["dataAvailability"]["ageGender"] is False
    assert "ad_sets" not in wire["dataAvailability"]
    assert wire["degradations"][0]["dimension"] == "ageGender"
    assert report.data_availability["ad_sets"] is False


def test_value_channel_roas():
    """Test per-channel ROAS is channel value over period spend."""
    pre_row = _row("A", 100)
    pre_row["action_values"] = [
        {"action_type": "offsite_conversion.fb_pixel_purchase", "value": "300"},
        {"action_type": "app_custom_event.fb_mobile_purchase", "value": "50"},
    ]
    post_row = _row("A", 0)
    post_row["action_values"] = [
        {"action_type": "offsite_conversion.fb_pixel_purchase", "value": "80"}
    ]

    channels = _build([pre_row], [post_row]).value_channels

    assert channels.pre_website_value == pytest.approx(300.0)
    assert channels.pre_website_roas == pytest.approx(3.0)
    assert channels.pre_in_app_roas == pytest.approx(0.5)
    assert channels.pre_offline_roas == 0
    assert channels.post_website_value == pytest.approx(80.0)
    assert channels.post_website_roas == 0

    wire = _build([pre_row], [post_row]).to_wire()["valueChannels"]
    assert wire["preWebsiteRoas"] == pytest.approx(3.0)
    assert "postInAppRoas" in wire
