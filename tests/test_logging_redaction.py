from __future__ import annotations

from contract_conduit.observability.logging import REDACTED, redact_sensitive


def test_contact_details_are_redacted_at_any_depth() -> None:
    event = {
        "event": "email_sent",
        "recipient_email": "buyer@example.com",
        "agent": {"name": "Pat", "phone": "512-555-0100", "contact": {"Email": "pat@example.com"}},
        "message_id": "email_123",
    }

    redacted = redact_sensitive(None, "info", event)

    assert redacted["recipient_email"] == REDACTED
    assert redacted["agent"]["phone"] == REDACTED
    assert redacted["agent"]["contact"]["Email"] == REDACTED
    assert redacted["agent"]["name"] == "Pat"
    assert redacted["message_id"] == "email_123"


def test_missing_values_are_left_alone() -> None:
    assert redact_sensitive(None, "info", {"email": None}) == {"email": None}
