import pytest
from pydantic import ValidationError

from src.tripopt.config import Settings


def test_clock_settings_are_normalized() -> None:
    configured = Settings(day_start_time="8:5", day_end_time="24:00")

    assert configured.day_start_time == "08:05"
    assert configured.day_end_time == "23:59"


@pytest.mark.parametrize("value", ["25:00", "9", "noon", "12:60"])
def test_invalid_clock_settings_are_rejected(value: str) -> None:
    with pytest.raises(ValidationError):
        Settings(default_open_time=value)


def test_allowed_origins_accept_comma_separated_text() -> None:
    configured = Settings(frontend_allowed_origins="https://a.example, https://b.example")

    assert configured.frontend_allowed_origins == ("https://a.example", "https://b.example")
