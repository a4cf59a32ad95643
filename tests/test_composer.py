"""Ticket composition and marker parsing tests."""

from __future__ import annotations

from bridge.composer import (
    compose,
    extract_email,
    parse_channel_id,
    parse_source_ticket_id,
    parse_user_id,
    resolve_email,
)
from bridge.schemas import TicketIntake


def _intake(**overrides) -> TicketIntake:
    payload = {
        "guild_id": "G1",
        "user_id": "111",
        "ticket_id": "T1",
        "ticket_channel_id": "C1",
        "form_data": {},
    }
    payload.update(overrides)
    return TicketIntake.model_validate(payload)


def test_description_contains_channel_and_ticket_markers() -> None:
    composed = compose(_intake())

    assert "Channel ID: C1" in composed.description
    assert "Ticket ID: T1" in composed.description
    assert "Guild ID: G1" in composed.description
    assert "Discord User ID: 111" in composed.description
    assert composed.description.startswith("Ticket opened from Discord")


def test_default_title_uses_source_ticket_id_and_subject_overrides() -> None:
    assert compose(_intake()).title == "Discord Ticket #T1"
    assert compose(_intake(subject="Refund please")).title == "Refund please"


def test_form_responses_rendered_in_mapping_order() -> None:
    composed = compose(_intake(form_data={"Second": "b", "First": "a"}, content="Help"))

    assert composed.description.startswith("Help\n\n**Form Responses:**\n")
    assert composed.description.index("• Second: b") < composed.description.index("• First: a")


def test_missing_channel_written_as_unknown_and_not_parsed() -> None:
    composed = compose(_intake(ticket_channel_id=None))

    assert "Channel ID: Unknown" in composed.description
    assert parse_channel_id(composed.description) is None


def test_trailer_order_is_stable() -> None:
    lines = compose(_intake()).description.splitlines()

    assert lines[-6:] == [
        "---",
        "*Created via Discord Tickets v2*",
        "Guild ID: G1",
        "Channel ID: C1",
        "Discord User ID: 111",
        "Ticket ID: T1",
    ]


def test_extract_email_prefers_earlier_variant() -> None:
    form = {"contact_email": "late@x.com", "Email Address": "early@x.com"}
    assert extract_email(form) == "early@x.com"


def test_extract_email_skips_blank_values() -> None:
    form = {"email": "   ", "E-mail": " second@x.com "}
    assert extract_email(form) == "second@x.com"


def test_extract_email_none_when_absent() -> None:
    assert extract_email({"Question": "answer"}) is None


def test_explicit_email_wins_over_form_data() -> None:
    intake = _intake(user_email="direct@x.com", form_data={"Email": "form@x.com"})
    assert resolve_email(intake) == "direct@x.com"
    assert resolve_email(_intake(form_data={"Email": "form@x.com"})) == "form@x.com"


def test_parsers_read_html_rendered_descriptions() -> None:
    text = "<p>Guild ID: 1</p><p>Channel ID: 998877<br>Discord User ID: 4455</p><p>Ticket ID: ticket-9</p>"

    assert parse_channel_id(text) == "998877"
    assert parse_user_id(text) == "4455"
    assert parse_source_ticket_id(text) == "ticket-9"
    assert parse_channel_id(None) is None


def test_markers_in_user_text_do_not_override_trailer() -> None:
    description = compose(
        _intake(
            content="dup of Ticket ID: T0",
            form_data={"Which channel is broken?": "Channel ID: 999", "Account": "Discord User ID: 222"},
        )
    ).description

    assert parse_channel_id(description) == "C1"
    assert parse_source_ticket_id(description) == "T1"
    assert parse_user_id(description) == "111"


def test_unknown_trailer_channel_ignores_channel_named_in_form() -> None:
    description = compose(
        _intake(ticket_channel_id=None, form_data={"Where?": "Channel ID: 999"})
    ).description

    assert parse_channel_id(description) is None


def test_last_marker_wins_without_provenance_line() -> None:
    text = "<p>see Channel ID: 999</p><p>Channel ID: 123</p>"

    assert parse_channel_id(text) == "123"
