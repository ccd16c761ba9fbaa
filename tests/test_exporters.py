from datetime import datetime, timezone

import pandas as pd
import pytest

from lead_navigator.exporters import EXPORT_COLUMNS, export_leads, leads_to_dataframe
from lead_navigator.models import LeadRecord


def _build_sample_leads():
    profile = LeadRecord(
        id="t1:https://www.linkedin.com/in/ada/",
        profile_url="https://www.linkedin.com/in/ada/",
        full_name="Ada Lovelace",
        headline="Mathematician",
        title="Lead Analyst",
        company_name="Analytical Engines",
        location="London",
        captured_at=datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc),
        email="ada@engines.example",
        email_verification_status="valid",
        task_name="Profiles",
        raw={
            "source": "profile_scrape",
            "lead_list_name": "Pioneers",
            "phone_numbers": ["+44 20 1234", "+44 20 5678"],
            "connection_count": 500,
            "experiences": [
                {"title": "Lead Analyst", "company": "Analytical Engines", "date_range_text": "1843 - Present"},
                {"title": "Translator", "company": "Taylor's Scientific Memoirs", "location": "Turin"},
            ],
            "education": [{"school": "Home tutoring", "field_of_study": "Mathematics"}],
        },
    )
    search = LeadRecord(
        id="p1:https://www.linkedin.com/in/charles/",
        profile_url="https://www.linkedin.com/in/charles/",
        full_name="Charles Babbage",
        connection_degree="2nd",
        raw={"source": "sales_navigator"},
    )
    return [profile, search]


def test_leads_to_dataframe_flattens_profile_details():
    dataframe = leads_to_dataframe(_build_sample_leads())

    assert list(dataframe.columns) == list(EXPORT_COLUMNS)
    row = dataframe.iloc[0]
    assert row["phone_numbers"] == "+44 20 1234 | +44 20 5678"
    assert row["connections"] == "500 connections"
    assert row["lead_list_name"] == "Pioneers"
    assert row["additional_locations"] == "Turin"
    assert row["previous_experience"] == "Translator @ Taylor's Scientific Memoirs | Turin"
    assert row["all_experience"].startswith("Lead Analyst @ Analytical Engines | 1843 - Present || ")
    assert row["education"] == "Home tutoring | Mathematics"
    assert row["captured_at"] == "2024-05-01T09:30:00+00:00"
    assert dataframe.iloc[1]["connection_degree"] == "2nd"
    assert dataframe.iloc[1]["email"] == ""


def test_export_leads_to_csv_and_excel(tmp_path):
    leads = _build_sample_leads()

    csv_path = export_leads(leads, tmp_path / "leads.csv")
    assert csv_path.exists()
    csv_frame = pd.read_csv(csv_path, keep_default_na=False)
    assert list(csv_frame["full_name"]) == ["Ada Lovelace", "Charles Babbage"]

    pytest.importorskip("openpyxl")
    excel_path = export_leads(leads, tmp_path / "leads.xlsx", sheet_name="Prospects")
    excel_frame = pd.read_excel(excel_path, sheet_name="Prospects")
    assert excel_frame.loc[0, "email"] == "ada@engines.example"


def test_export_filters_by_ids(tmp_path):
    leads = _build_sample_leads()

    output = export_leads(leads, tmp_path / "subset.tsv", ids=["p1:https://www.linkedin.com/in/charles/"])

    frame = pd.read_csv(output, sep="\t", keep_default_na=False)
    assert list(frame["full_name"]) == ["Charles Babbage"]
    assert frame.loc[0, "source"] == "sales_navigator"


def test_empty_export_still_writes_headers(tmp_path):
    output = export_leads([], tmp_path / "empty.csv")

    assert output.read_text(encoding="utf-8").strip() == ",".join(EXPORT_COLUMNS)


def test_export_rejects_unknown_extension(tmp_path):
    with pytest.raises(ValueError):
        export_leads(_build_sample_leads(), tmp_path / "leads.json")
