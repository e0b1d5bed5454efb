import pytest

from storyteller.domain.prompts import AI_DISCLOSURE, DatelineRule, build_story_prompt, normalize_story


def test_strips_quoted_title():
    raw = '"Ice Storm Grips Town"\n\nBozeman, Montana — January 15, 2019\n\nBody.'

    assert normalize_story(raw) == "Ice Storm Grips Town\n\nBozeman, Montana — January 15, 2019\n\nBody."


@pytest.mark.parametrize(
    "raw",
    [
        "Ice Storm Grips Town\n\nBody.",
        '"Half quoted title\n\nBody.',
        '"\n\nBody.',
        "",
    ],
)
def test_leaves_other_titles_alone(raw):
    assert normalize_story(raw) == raw


def test_only_first_line_is_touched():
    raw = 'Title\n\n"A quote from a witness"'

    assert normalize_story(raw) == raw


@pytest.mark.parametrize(
    "rule, expected",
    [
        (DatelineRule.BEFORE_CUTOFF, "no later than November 2025"),
        (DatelineRule.SEASONAL_2025, "The year must be 2025"),
        (DatelineRule.SEASONAL_RANGE, "randomly selected between 2016 and 2026"),
    ],
)
def test_dateline_rules(rule, expected):
    prompt = build_story_prompt(rule)

    assert expected in prompt
    assert "45 characters or less" in prompt
    assert "at least 3 paragraphs" in prompt
    assert prompt.endswith(AI_DISCLOSURE)


def test_rule_accepts_plain_string():
    assert build_story_prompt("seasonal_2025") == build_story_prompt(DatelineRule.SEASONAL_2025)
