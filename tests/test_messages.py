from __future__ import annotations

import math
from datetime import datetime, timezone

from core.messages import autofocus_message, format_measure, image_message
from core.models import AutofocusResult, FrameType, Image


def test_format_measure_marks_missing_values() -> None:
    assert format_measure(2.345, ".2f") == "2.35"
    assert format_measure(-10.0, ".1f", "°C") == "-10.0°C"
    assert format_measure(math.nan, ".1f", "°C") == "n/a"
    assert format_measure(float("-inf"), ".4f") == "n/a"


def test_autofocus_without_fit_shows_not_available() -> None:
    result = AutofocusResult(
        success=True,
        filter="L",
        method="STARHFR",
        duration="00:01:00",
        temperature=math.nan,
        focuser_name="ZWO EAF",
        initial_position=100,
        calculated_position=100,
        hfr=math.nan,
        calculated_error=0.0,
        measurement_count=0,
        best_r_squared=float("-inf"),
    )

    fields = {field.name: field.value for field in autofocus_message(result).fields}

    assert fields["Temperature"] == "n/a"
    assert fields["HFR"] == "n/a"
    assert fields["R-squared"] == "n/a"
    assert fields["Position Change"] == "0"


def test_image_without_temperature_shows_not_available() -> None:
    image = Image(
        index=3,
        timestamp=datetime(2024, 3, 1, 22, 0, tzinfo=timezone.utc),
        filter="OIII",
        exposure_time=300.0,
        frame_type=FrameType.LIGHT,
        raw_type="LIGHT",
        mean=1200.0,
        median=1100.0,
        stdev=80.0,
        stars=950,
        hfr=math.nan,
        temperature=math.nan,
    )

    fields = {field.name: field.value for field in image_message(image, 0, None, None).fields}

    assert fields["Temperature"] == "n/a"
    assert fields["HFR"] == "n/a"
    assert fields["Mean"] == "1200.0"
