"""Zoom/pan parameter derivation and filter rendering."""

import math

import pytest

from reelpipe.services.zoompan import ZoomPanConfig, build_zoompan_filter


def test_ten_seconds_at_sixty_fps():
    config = ZoomPanConfig(duration=10, width=1080, height=1920)

    assert config.frames == 600
    assert config.zoom_increment == pytest.approx(0.5 / 600)
    assert config.zoom_increment == pytest.approx(0.000833, abs=1e-6)


@pytest.mark.parametrize("duration", [0.01, 1.0, 3.3333, 7.25, 10.0, 61.7])
def test_zoom_never_exceeds_final(duration):
    config = ZoomPanConfig(duration=duration, width=1080, height=1920)

    zooms = [config.zoom_at(f) for f in range(config.frames + 1)]

    assert zooms[0] == 1.0
    assert max(zooms) <= 1.5
    assert zooms[-1] == pytest.approx(1.5)
    assert all(a <= b for a, b in zip(zooms, zooms[1:]))


def test_zoom_is_clamped_beyond_last_frame():
    config = ZoomPanConfig(duration=2, width=100, height=100)
    assert config.zoom_at(config.frames * 3) == 1.5


def test_frames_round_up():
    config = ZoomPanConfig(duration=1.001, width=100, height=100)
    assert config.frames == math.ceil(1.001 * 60) == 61


@pytest.mark.parametrize("duration", [0, -1.5])
def test_non_positive_duration_rejected(duration):
    with pytest.raises(ValueError):
        ZoomPanConfig(duration=duration, width=1080, height=1920)


def test_filter_string_is_centered_and_sized():
    config = ZoomPanConfig(duration=10, width=1080, height=1920)

    assert build_zoompan_filter(config) == (
        "scale=8000:-1,"
        "zoompan=z='min(zoom+0.000833,1.5)':d=600"
        ":x='(iw-(iw/zoom))*(0.5)':y='(ih-(ih/zoom))*(0.5)'"
        ":s=1080x1920:fps=60"
    )


def test_filter_follows_custom_parameters():
    config = ZoomPanConfig(
        duration=2, width=720, height=1280, fps=30, final_zoom=1.2, prescale_width=4000
    )
    rendered = build_zoompan_filter(config)

    assert rendered.startswith("scale=4000:-1,")
    assert "min(zoom+0.003333,1.2)" in rendered
    assert ":d=60:" in rendered
    assert rendered.endswith(":s=720x1280:fps=30")
