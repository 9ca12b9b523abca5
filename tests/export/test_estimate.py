import pytest

from engine.export.estimate import (
    SizeHeuristics,
    estimate,
    estimated_frame_count,
    format_size,
)
from engine.export.settings import GifSettings, VideoSettings


def test_frame_model():
    assert estimated_frame_count("none", 10) == 1
    assert estimated_frame_count("static", 10) == 1
    assert estimated_frame_count("reveal", 4) == 7
    assert estimated_frame_count("typing", 4) == 22
    assert estimated_frame_count("scroll", 40) == 11


@pytest.mark.smoke
def test_gif_estimate_values():
    # reveal 5 件: 8 フレーム × 30 KiB
    assert estimate(5, "reveal", GifSettings()) == 8 * 30 * 1024
    assert estimate(5, "reveal", GifSettings(quality="high")) == int(8 * 45 * 1024)
    assert estimate(0, "none", GifSettings(width=800)) == 60 * 1024


def test_video_estimate_values():
    # 5 秒 × 2000 KiB/s × 1080p 係数 2
    assert estimate(3, "reveal", VideoSettings()) == pytest.approx(5 * 2000 * 2 * 1024, rel=1e-9)
    assert estimate(3, "reveal", VideoSettings(resolution="720p")) == 5 * 2000 * 1024


def test_estimate_is_monotonic_in_units_and_resolution():
    for style in ("none", "reveal", "typing", "scroll"):
        for q in ("low", "medium", "high"):
            s = GifSettings(quality=q)
            sizes = [estimate(n, style, s) for n in range(0, 30)]
            assert sizes == sorted(sizes)
    assert estimate(5, "reveal", GifSettings()) <= estimate(10, "reveal", GifSettings())
    tiers = [estimate(3, "typing", VideoSettings(resolution=r)) for r in ("720p", "1080p", "4k")]
    assert tiers == sorted(tiers)


def test_heuristics_are_replaceable():
    h = SizeHeuristics(gif_kib_per_frame=1.0)
    assert estimate(1, "none", GifSettings(), h) == 1024
    with pytest.raises(TypeError):
        estimate(1, "none", object())  # type: ignore[arg-type]


def test_format_size():
    assert format_size(0) == "~0 KB"
    assert format_size(123 * 1024) == "~123 KB"
    assert format_size(int(1.2 * 1024 * 1024)) == "~1.2 MB"
    assert format_size(-5) == "~0 KB"
