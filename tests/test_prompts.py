import pytest

from src.aiba.domain.modes import Mode, artifact_slot, parse_mode
from src.aiba.services import prompts


def test_known_modes_select_their_templates():
    assert "structured discovery interview" in prompts.select_system_prompt("interview", "PM", "Acme")
    assert "user story decomposition" in prompts.select_system_prompt("stories", "PM", "Acme")
    assert "impact analysis" in prompts.select_system_prompt("impact", "PM", "Acme")
    assert "11-ELEMENT STRUCTURE" in prompts.select_system_prompt("prd", "PM", "Acme")


@pytest.mark.parametrize("tag", [None, "", "default", "  PRD  "])
def test_default_tags_resolve_to_prd(tag):
    assert parse_mode(tag) is Mode.PRD
    assert prompts.select_system_prompt(tag, "PM", "Acme") == prompts.render_prd("PM", "Acme")


def test_unknown_mode_falls_back_to_default_deterministically():
    assert parse_mode("brainstorm") is Mode.UNKNOWN
    first = prompts.select_system_prompt("brainstorm", "Senior PM", "Contoso Bank")
    second = prompts.select_system_prompt("brainstorm", "Senior PM", "Contoso Bank")

    assert first == second
    assert first == prompts.select_system_prompt("prd", "Senior PM", "Contoso Bank")


def test_every_mode_has_a_template():
    assert set(prompts.TEMPLATES) == set(Mode)


def test_role_and_company_are_rendered_with_defaults():
    text = prompts.select_system_prompt("interview", "Product Owner", "Northwind Logistics")
    assert "You are helping a Product Owner at: Northwind Logistics." in text

    fallback = prompts.select_system_prompt("interview", "", "   ")
    assert "You are helping a Senior PM at: an enterprise organization." in fallback


def test_artifact_slots_follow_mode():
    assert artifact_slot(Mode.PRD) == "full_prd"
    assert artifact_slot(Mode.STORIES) == "user_stories"
    assert artifact_slot(Mode.IMPACT) == "impact_analysis"
    assert artifact_slot(Mode.INTERVIEW) is None
    assert artifact_slot(parse_mode("whatever")) == "full_prd"
