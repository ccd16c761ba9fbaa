from __future__ import annotations

from dataclasses import replace

import pytest

from lead_navigator.errors import NotFoundError
from lead_navigator.merge import merge_leads
from lead_navigator.models import AutomationSettings, ICPProfile, LeadRecord


def _lead(lead_id: str, url: str, name: str) -> LeadRecord:
    return LeadRecord(id=lead_id, profile_url=url, full_name=name)


def test_merge_keeps_first_position_and_last_content() -> None:
    existing = [_lead("1", "https://x/in/a", "Alice"), _lead("2", "https://x/in/b", "Bob")]
    incoming = [_lead("3", "https://x/in/c", "Cara"), _lead("4", "HTTPS://X/IN/A", "Alicia")]

    merged = merge_leads(existing, incoming)

    assert [lead.full_name for lead in merged] == ["Alicia", "Bob", "Cara"]
    assert merged[0].id == "4"


def test_append_same_lead_twice_is_idempotent(repository) -> None:
    lead = _lead("1", "https://www.linkedin.com/in/a/", "Alice")

    repository.append_leads([lead])
    repository.append_leads([lead])

    assert repository.list_leads() == [lead]


def test_append_last_write_wins_in_first_seen_slot(repository) -> None:
    repository.append_leads([_lead("a", "https://www.linkedin.com/in/u/", "Alice")])
    repository.append_leads([_lead("z", "https://www.linkedin.com/in/other/", "Zed")])
    returned = repository.append_leads([_lead("b", "HTTPS://WWW.LINKEDIN.COM/IN/U/", "Alicia")])

    leads = repository.list_leads()
    assert [lead.full_name for lead in leads] == ["Alicia", "Zed"]
    assert [lead.full_name for lead in returned] == ["Alicia"]


def test_update_lead_keeps_id_and_position(repository) -> None:
    repository.append_leads([_lead("1", "https://x/in/a", "A"), _lead("2", "https://x/in/b", "B")])

    updated = repository.update_lead("2", lambda lead: replace(lead, id="changed", email="b@example.com"))

    assert updated.id == "2"
    assert [lead.id for lead in repository.list_leads()] == ["1", "2"]
    assert repository.list_leads()[1].email == "b@example.com"


def test_update_missing_lead_raises_not_found(repository) -> None:
    with pytest.raises(NotFoundError):
        repository.update_lead("missing", lambda lead: lead)


def test_delete_leads_reports_removed_count(repository) -> None:
    repository.append_leads([_lead("1", "https://x/in/a", "A"), _lead("2", "https://x/in/b", "B")])

    assert repository.delete_leads(["2", "unknown"]) == 1
    assert [lead.id for lead in repository.list_leads()] == ["1"]


def test_preset_crud(repository) -> None:
    preset = repository.create_search_preset(name="Founders", page_limit=2)
    assert repository.find_search_preset(preset.id) == preset

    renamed = repository.update_search_preset(preset.id, lambda current: replace(current, name="CEOs", id="x"))
    assert renamed.id == preset.id
    assert renamed.name == "CEOs"
    assert renamed.updated_at >= preset.updated_at

    repository.delete_search_preset(preset.id)
    assert repository.find_search_preset(preset.id) is None
    with pytest.raises(NotFoundError):
        repository.update_search_preset(preset.id, lambda current: current)


def test_icp_and_settings_are_persisted(repository) -> None:
    repository.save_icp(ICPProfile(ideal_titles=["CTO"], keywords=["saas"]))
    settings = AutomationSettings(headless=False, min_delay_ms=100, max_delay_ms=200)
    repository.save_automation_settings(settings)

    assert repository.get_icp().ideal_titles == ["CTO"]
    assert repository.get_automation_settings() == settings


def test_saved_settings_are_a_copy(repository) -> None:
    settings = AutomationSettings()
    repository.save_automation_settings(settings)
    settings.automation_modes.append("custom")

    assert "custom" not in repository.get_automation_settings().automation_modes


def test_reset_restores_defaults(repository) -> None:
    repository.append_leads([_lead("1", "https://x/in/a", "A")])

    repository.reset()

    assert repository.list_leads() == []
