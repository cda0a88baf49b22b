from healthflow.prompts import (
    SUMMARY_SECTIONS,
    build_chat_prompt,
    build_intake_prompt,
    build_summary_prompt,
)


def test_chat_prompt_contains_clinic_facts():
    system, user = build_chat_prompt("What are your hours?")
    assert system["role"] == "system"
    assert "Monday-Friday 8:00 AM - 6:00 PM" in system["content"]
    assert "Blue Cross Blue Shield" in system["content"]
    assert user == {"role": "user", "content": "What are your hours?"}


def test_chat_prompt_tolerates_partial_knowledge_base():
    system, _ = build_chat_prompt("hi", {"clinicInfo": "broken", "insurance": None})
    assert "123 Medical Center Drive" in system["content"]


def test_summary_prompt_lists_five_sections_in_order():
    system, user = build_summary_prompt("raw text")
    content = system["content"]
    positions = [content.index(f"{i}. {name}") for i, name in enumerate(SUMMARY_SECTIONS, start=1)]
    assert positions == sorted(positions)
    assert len(SUMMARY_SECTIONS) == 5
    assert user["content"] == "Please summarize the following clinical note:\n\nraw text"


def test_intake_prompt_describes_schema():
    system, user = build_intake_prompt("pediatric")
    assert "pediatric patient visit" in system["content"]
    assert '"type": "text|select|checkbox|date"' in system["content"]
    assert user["content"] == "Generate intake questions for: pediatric"
