"""Tests for bezel.export_size — aspect-locked export dimensions."""

import pytest

from bezel.export_size import MAX_DIMENSION, ExportSize


class TestExportSize:
    def test_starts_at_original(self) -> None:
        size = ExportSize(1250, 2612)
        assert size.target_size == (1250, 2612)
        assert not size.size_changed

    @pytest.mark.parametrize("w,h", [(0, 10), (10, 0), (-5, 10)])
    def test_rejects_non_positive(self, w: int, h: int) -> None:
        with pytest.raises(ValueError):
            ExportSize(w, h)

    def test_width_keeps_aspect(self) -> None:
        size = ExportSize(1250, 2612)
        size.set_width_preserving_aspect(625)
        assert size.target_size == (625, 1306)
        assert size.size_changed

    def test_height_keeps_aspect(self) -> None:
        size = ExportSize(1250, 2612)
        size.set_height_preserving_aspect(1306)
        assert size.target_size == (625, 1306)

    def test_rounds_half_up(self) -> None:
        size = ExportSize(4, 3)
        size.set_width_preserving_aspect(2)     # 1.5 → 2
        assert size.height == 2
        size.set_width_preserving_aspect(6)     # 4.5 → 5
        assert size.height == 5

    def test_clamped(self) -> None:
        size = ExportSize(100, 200)
        size.set_width_preserving_aspect(0)
        assert size.width == 1
        assert size.height == 2
        size.set_height_preserving_aspect(10 ** 6)
        assert size.height == MAX_DIMENSION

    def test_reset(self) -> None:
        size = ExportSize(100, 200)
        size.set_width_preserving_aspect(50)
        size.reset()
        assert size.target_size == (100, 200)
        assert not size.size_changed

    def test_high_quality_threshold(self) -> None:
        assert ExportSize(2000, 2000).is_high_quality
        assert not ExportSize(2000, 2001).is_high_quality
