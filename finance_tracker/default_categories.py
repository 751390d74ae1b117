# finance_tracker/default_categories.py

UNCATEGORIZED = "Uncategorized"

# Chart colors for the stock categories; also used as the fallback palette
# when a category name has no stored color.
CATEGORY_COLORS = {
    "Food": "#8884d8",
    "Transportation": "#82ca9d",
    "Housing": "#ffc658",
    "Entertainment": "#ff8042",
    "Utilities": "#0088fe",
    "Healthcare": "#00C49F",
    "Education": "#FFBB28",
    "Shopping": "#FF8042",
    "Travel": "#a4de6c",
    UNCATEGORIZED: "#d0d0d0",
}

DEFAULT_CATEGORIES = [
    {"name": name, "color": color}
    for name, color in CATEGORY_COLORS.items()
    if name != UNCATEGORIZED
]


def color_for(name, index, known=None):
    """Pick a chart color for a category name.

    Stored colors win, then the stock palette, then an evenly spread hue.
    """
    if known and name in known:
        return known[name]
    if name in CATEGORY_COLORS:
        return CATEGORY_COLORS[name]
    return f"hsl({index * 30 % 360}, 70%, 50%)"
