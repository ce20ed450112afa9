from algopanel.infrastructure.logging.logging import REDACTED, redact_secrets


def test_secrets_are_redacted():
    event = redact_secrets(
        None,
        "info",
        {"event": "login_ok", "username": "admin", "token": "tok-abc", "Authorization": "Bearer tok-abc"},
    )

    assert event["token"] == REDACTED
    assert event["Authorization"] == REDACTED
    assert event["username"] == "admin"


def test_missing_secret_stays_none():
    assert redact_secrets(None, "info", {"event": "logout", "token": None})["token"] is None
