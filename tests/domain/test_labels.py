"""Tests for dashboard label tables."""

from src.domain.labels import (
    BED_STATUS,
    NEUTRAL_COLOR,
    TABLES,
    TRANSFER_URGENCY,
    as_options,
    get_color,
    get_label,
)


def test_get_label_known_value():
    assert get_label(BED_STATUS, "dirty") == "Needs Cleaning"
    assert get_label(TRANSFER_URGENCY, "emergent") == "Emergent"


def test_get_label_falls_back_to_title_case():
    assert get_label(BED_STATUS, "on_hold") == "On Hold"
    assert get_label(BED_STATUS, None) == "Unknown"


def test_get_color_falls_back_to_neutral():
    assert get_color(TRANSFER_URGENCY, "critical") == "#dc3545"
    assert get_color(TRANSFER_URGENCY, "whenever") == NEUTRAL_COLOR


def test_as_options_keeps_table_order():
    options = as_options(TRANSFER_URGENCY)

    assert [option["value"] for option in options] == ["routine", "urgent", "emergent", "critical"]
    assert options[0] == {"value": "routine", "label": "Routine", "color": "#28a745"}


def test_every_table_entry_is_label_and_hex_color():
    for table in TABLES.values():
        for label, color in table.values():
            assert label
            assert color.startswith("#") and len(color) == 7
