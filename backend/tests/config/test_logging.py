import logging

from shared.config.logging import DEFAULT_LOGGER_LEVELS, configure_logging, parse_logger_levels


def test_parse_logger_levels_skips_malformed_pairs() -> None:
    levels = parse_logger_levels(
        "difficulty.services.telemetry_service=warning, uvicorn.access=ERROR,broken,=DEBUG,app=LOUD"
    )

    assert levels == {
        "difficulty.services.telemetry_service": logging.WARNING,
        "uvicorn.access": logging.ERROR,
    }


def test_default_levels_quiet_the_access_log() -> None:
    assert parse_logger_levels(DEFAULT_LOGGER_LEVELS) == {"uvicorn.access": logging.WARNING}


def test_configure_logging_applies_levels_from_environment(monkeypatch) -> None:
    name = "difficulty.tests.noisy"
    monkeypatch.setenv("LOG_LEVELS", f"{name}=ERROR")
    try:
        configure_logging(logging.INFO)
        assert logging.getLogger(name).level == logging.ERROR
    finally:
        logging.getLogger(name).setLevel(logging.NOTSET)


def test_explicit_logger_levels_override_environment(monkeypatch) -> None:
    name = "difficulty.tests.chatty"
    monkeypatch.setenv("LOG_LEVELS", f"{name}=ERROR")
    try:
        configure_logging(logging.INFO, logger_levels={name: logging.DEBUG})
        assert logging.getLogger(name).level == logging.DEBUG
    finally:
        logging.getLogger(name).setLevel(logging.NOTSET)
