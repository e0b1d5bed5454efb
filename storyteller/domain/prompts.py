"""
Prompt text sent with every video, and the normalisation applied to the reply.
"""
from enum import Enum


class DatelineRule(str, Enum):
    BEFORE_CUTOFF = "before_cutoff"
    SEASONAL_2025 = "seasonal_2025"
    SEASONAL_RANGE = "seasonal_range"


AI_DISCLOSURE = "This video is created using AI, and the story is for your entertainment."

_SEASON_RULES = """  * The month should match the video content:
    - Winter scenes (snow, ice, cold weather) → December, January, or February
    - Summer scenes (beach, heat, outdoor activities) → June, July, or August
    - Spring scenes (flowers, rain, mild weather) → March, April, or May
    - Fall scenes (autumn leaves, harvest) → September, October, or November
    - Indoor/neutral content → Any month is acceptable
  * Pick a realistic day for that month (1-28/29/30/31 depending on month)"""

_DATELINE_RULES = {
    DatelineRule.BEFORE_CUTOFF: "- Invent a plausible location and a date no later than November 2025.",
    DatelineRule.SEASONAL_2025: (
        "- Invent a plausible location and a date following these rules:\n"
        "  * The year must be 2025\n" + _SEASON_RULES
    ),
    DatelineRule.SEASONAL_RANGE: (
        "- Invent a plausible location and a date following these rules:\n"
        "  * The year must be randomly selected between 2016 and 2026\n" + _SEASON_RULES
    ),
}

_EXAMPLE_DATES = {
    DatelineRule.BEFORE_CUTOFF: "December 4, 2025",
    DatelineRule.SEASONAL_2025: "January 15, 2019",
    DatelineRule.SEASONAL_RANGE: "January 15, 2019",
}

_TEMPLATE = """Based on the video, create a news story that strictly follows the format and structure of the example below.

{dateline}
- The title must be 45 characters or less and enclosed in double quotes.
- The main story (between the date and the final disclaimer) must have at least 3 paragraphs.
- The output must be a continuous stream.
- Use a single blank line to separate the title, date, each paragraph, and the final disclaimer.

**EXAMPLE:**

"Chain-Reaction Crash on Icy Hill Leaves Dozens Stranded"

Bozeman, Montana — {example_date}

A sheet of invisible black ice turned a quiet mountain roadway into a chaotic crash zone Thursday morning, as car after car slid helplessly down a steep hill, slamming into vehicles already wrecked at the bottom.

The viral video shows the terrifying sequence unfolding in real time: a red sedan loses control first, spinning sideways across the road. A white SUV approaches moments later, taps the brakes, and instantly begins sliding as if on glass, colliding violently with the stranded sedan. Within seconds, another crossover comes down the hill with zero traction, tires locked, skidding directly into the growing pileup.

Drivers exiting their vehicles can be seen slipping on the ice themselves, shouting warnings to oncoming traffic as more cars crest the hill unaware of the danger. Fortunately, authorities report that despite the dramatic footage, injuries were minor—thanks largely to the low speeds and quick response from nearby motorists who helped divert traffic.

Officials are urging drivers to stay off steep grades during freezing rain conditions, as black ice often forms without any visible indication and can render brakes and steering nearly useless.

{disclosure}"""


def build_story_prompt(rule: DatelineRule = DatelineRule.SEASONAL_RANGE) -> str:
    rule = DatelineRule(rule)
    return _TEMPLATE.format(
        dateline=_DATELINE_RULES[rule],
        example_date=_EXAMPLE_DATES[rule],
        disclosure=AI_DISCLOSURE,
    )


def normalize_story(text: str) -> str:
    """
    Strip the double quotes around the title line, if the model added them.

    Nothing else is checked: paragraph count and title length are left as the
    model wrote them.
    """
    lines = text.split("\n")
    first = lines[0]
    if len(first) >= 2 and first.startswith('"') and first.endswith('"'):
        lines[0] = first[1:-1]
    return "\n".join(lines)
