"""Tests for bezel.region_generator — the offline regions/masks tool."""

import json
import os

import numpy as np

from bezel.image_io import load_mask, save_png
from bezel.models import ScreenRegion
from bezel.region_cache import load_region_table
from bezel.region_generator import GenerationReport, generate_masks, generate_regions, main
from bezel.resources import ResourcePaths

from conftest import LANDSCAPE_HOLE, PORTRAIT_HOLE, PORTRAIT_SIZE, make_bezel


def _run(resources: ResourcePaths, *extra: str) -> int:
    return main(["--resources", resources.root, *extra])


class TestGenerationReport:
    def test_summary_line(self) -> None:
        report = GenerationReport(total=5, new=2, skipped=3, pruned=1)
        assert report.summary("Screen regions") == \
            "Screen regions: 5 total, 2 new, 3 skipped, 1 pruned"


class TestGenerateRegions:
    def test_writes_sorted_table(self, bezel_resources: ResourcePaths) -> None:
        bezels = bezel_resources.list_bezels()
        report = generate_regions(bezel_resources, bezels)
        assert report.new == 3
        assert report.total == 3
        assert report.failures == []

        table = load_region_table(bezel_resources.regions_path)
        assert table["Test Phone - Black - Portrait.png"] == PORTRAIT_HOLE
        assert table["Test Phone - Black - Landscape.png"] == LANDSCAPE_HOLE

        with open(bezel_resources.regions_path, encoding="utf-8") as f:
            keys = list(json.load(f).keys())
        assert keys == sorted(keys)

    def test_incremental_skips_existing(self, bezel_resources: ResourcePaths) -> None:
        bezels = bezel_resources.list_bezels()
        generate_regions(bezel_resources, bezels)
        report = generate_regions(bezel_resources, bezels)
        assert report.new == 0
        assert report.skipped == 3

    def test_force_regenerates(self, bezel_resources: ResourcePaths) -> None:
        bezels = bezel_resources.list_bezels()
        generate_regions(bezel_resources, bezels)
        report = generate_regions(bezel_resources, bezels, force=True)
        assert report.new == 3
        assert report.skipped == 0

    def test_prunes_removed_bezels(self, bezel_resources: ResourcePaths) -> None:
        bezels = bezel_resources.list_bezels()
        generate_regions(bezel_resources, bezels)
        os.remove(os.path.join(bezel_resources.bezels_dir, "Test Phone - White - Portrait.png"))
        report = generate_regions(bezel_resources, bezel_resources.list_bezels())
        assert report.pruned == 1
        assert report.total == 2
        assert "Test Phone - White - Portrait.png" not in load_region_table(
            bezel_resources.regions_path)

    def test_failure_is_reported(self, bezel_resources: ResourcePaths) -> None:
        opaque = make_bezel(PORTRAIT_SIZE, PORTRAIT_HOLE)
        opaque[:, :, 3] = 255
        save_png(opaque, os.path.join(bezel_resources.bezels_dir, "Broken - Portrait.png"))
        report = generate_regions(bezel_resources, bezel_resources.list_bezels())
        assert report.failures == ["Broken - Portrait.png"]
        assert report.new == 3


class TestGenerateMasks:
    def test_one_mask_per_bezel(self, bezel_resources: ResourcePaths) -> None:
        bezels = bezel_resources.list_bezels()
        report = generate_masks(bezel_resources, bezels)
        assert report.new == 3
        mask = load_mask(bezel_resources.mask_path("Test Phone - Black - Portrait.png"))
        assert mask.shape == (PORTRAIT_SIZE[1], PORTRAIT_SIZE[0])
        assert set(np.unique(mask)) == {0, 255}

    def test_current_masks_skipped(self, bezel_resources: ResourcePaths) -> None:
        bezels = bezel_resources.list_bezels()
        generate_masks(bezel_resources, bezels)
        report = generate_masks(bezel_resources, bezels)
        assert report.skipped == 3
        assert report.new == 0

    def test_stale_mask_regenerated(self, bezel_resources: ResourcePaths) -> None:
        bezels = bezel_resources.list_bezels()
        generate_masks(bezel_resources, bezels)
        name = "Test Phone - Black - Portrait.png"
        mask_path = bezel_resources.mask_path(name)
        old = os.path.getmtime(os.path.join(bezel_resources.bezels_dir, name)) - 100
        os.utime(mask_path, (old, old))
        report = generate_masks(bezel_resources, bezels)
        assert report.new == 1
        assert report.skipped == 2

    def test_orphan_masks_pruned(self, bezel_resources: ResourcePaths) -> None:
        generate_masks(bezel_resources, bezel_resources.list_bezels())
        os.remove(os.path.join(bezel_resources.bezels_dir, "Test Phone - White - Portrait.png"))
        report = generate_masks(bezel_resources, bezel_resources.list_bezels())
        assert report.pruned == 1
        assert not os.path.exists(bezel_resources.mask_path("Test Phone - White - Portrait.png"))


class TestMain:
    def test_success_prints_summaries(self, bezel_resources: ResourcePaths, capsys) -> None:
        assert _run(bezel_resources) == 0
        out = capsys.readouterr().out
        assert "Screen regions: 3 total, 3 new, 0 skipped, 0 pruned" in out
        assert "Screen masks: 3 total, 3 new, 0 skipped, 0 pruned" in out

    def test_force_flag(self, bezel_resources: ResourcePaths, capsys) -> None:
        _run(bezel_resources)
        capsys.readouterr()
        assert _run(bezel_resources, "--force") == 0
        assert "3 new" in capsys.readouterr().out

    def test_no_bezels_is_an_error(self, resources: ResourcePaths, capsys) -> None:
        assert _run(resources) == 1
        assert "No PNG files found" in capsys.readouterr().err

    def test_failures_listed_on_stderr(self, bezel_resources: ResourcePaths, capsys) -> None:
        opaque = make_bezel(PORTRAIT_SIZE, ScreenRegion(20, 30, 200, 340))
        opaque[:, :, 3] = 255
        save_png(opaque, os.path.join(bezel_resources.bezels_dir, "Broken - Portrait.png"))
        assert _run(bezel_resources) == 1
        err = capsys.readouterr().err
        assert "Failed bezels (1):" in err
        assert "  - Broken - Portrait.png" in err
