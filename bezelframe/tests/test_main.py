"""Tests for the bezelframe command line."""

import os

import numpy as np
import pytest

from bezel.catalog import find_device
from bezel.image_io import load_image, save_png
from bezel.resources import ResourcePaths

from main import build_parser, main

from conftest import PORTRAIT_HOLE, PORTRAIT_SIZE, make_bezel


@pytest.fixture
def catalog_resources(resources: ResourcePaths) -> ResourcePaths:
    """Synthetic artwork for the iPhone 14 default colour, portrait only."""
    device = find_device("iphone14")
    name = device.bezel_file_name(device.default_color, False)
    save_png(make_bezel(PORTRAIT_SIZE, PORTRAIT_HOLE), os.path.join(resources.bezels_dir, name))
    return resources


def _run(resources: ResourcePaths, *argv: str) -> int:
    return main(["--resources", resources.root, *argv])


class TestParser:
    def test_frame_defaults(self) -> None:
        args = build_parser().parse_args(["frame", "shot.png"])
        assert args.rotate == 0
        assert args.orientation is None
        assert args.output is None

    def test_rotation_choices(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["frame", "shot.png", "--rotate", "45"])

    def test_orientation_flags_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["frame", "a.png", "--landscape", "--portrait"])


class TestMatchCommand:
    def test_match_found(self, catalog_resources: ResourcePaths, capsys) -> None:
        assert _run(catalog_resources, "match", "200", "340") == 0
        assert "iphone14" in capsys.readouterr().out

    def test_landscape_match(self, catalog_resources: ResourcePaths, capsys) -> None:
        assert _run(catalog_resources, "match", "340", "200") == 0
        assert "landscape" in capsys.readouterr().out

    def test_no_match(self, catalog_resources: ResourcePaths, capsys) -> None:
        assert _run(catalog_resources, "match", "999", "999") == 1
        assert "No matching device found for 999×999 screenshot." in capsys.readouterr().out

    def test_strict(self, catalog_resources: ResourcePaths) -> None:
        assert _run(catalog_resources, "match", "201", "340") == 0
        assert _run(catalog_resources, "match", "--strict", "201", "340") == 1


class TestFrameCommand:
    def test_frames_screenshot(self, catalog_resources: ResourcePaths, screenshot,
                               tmp_path, capsys) -> None:
        shot = save_png(screenshot, str(tmp_path / "shot.png"))
        assert _run(catalog_resources, "frame", shot) == 0
        out_path = str(tmp_path / "shot-framed.png")
        assert out_path in capsys.readouterr().out
        framed = load_image(out_path)
        assert framed.shape == (400, 240, 4)

    def test_width_scales_output(self, catalog_resources: ResourcePaths, screenshot,
                                 tmp_path) -> None:
        shot = save_png(screenshot, str(tmp_path / "shot.png"))
        out = str(tmp_path / "small.png")
        assert _run(catalog_resources, "frame", shot, "-o", out, "--width", "120") == 0
        assert load_image(out).shape == (200, 120, 4)

    def test_background(self, catalog_resources: ResourcePaths, screenshot,
                        tmp_path) -> None:
        shot = save_png(screenshot, str(tmp_path / "shot.png"))
        out = str(tmp_path / "bg.png")
        assert _run(catalog_resources, "frame", shot, "-o", out, "--background", "#00FF00") == 0
        assert load_image(out)[0, 0].tolist() == [0, 255, 0, 255]

    def test_rotate_before_matching(self, catalog_resources: ResourcePaths,
                                    tmp_path) -> None:
        sideways = np.full((200, 340, 4), 255, dtype=np.uint8)
        shot = save_png(sideways, str(tmp_path / "side.png"))
        out = str(tmp_path / "rot.png")
        assert _run(catalog_resources, "frame", shot, "-o", out, "--rotate", "90") == 0
        assert load_image(out).shape == (400, 240, 4)

    def test_no_match(self, catalog_resources: ResourcePaths, tmp_path, capsys) -> None:
        shot = save_png(np.zeros((50, 50, 4), dtype=np.uint8), str(tmp_path / "tiny.png"))
        assert _run(catalog_resources, "frame", shot) == 1
        assert "No matching device found for 50×50 screenshot." in capsys.readouterr().err

    def test_unknown_color(self, catalog_resources: ResourcePaths, screenshot,
                           tmp_path, capsys) -> None:
        shot = save_png(screenshot, str(tmp_path / "shot.png"))
        assert _run(catalog_resources, "frame", shot, "--color", "Chartreuse") == 1
        assert "has no colour 'Chartreuse'" in capsys.readouterr().err

    def test_bad_background(self, catalog_resources: ResourcePaths, screenshot,
                            tmp_path, capsys) -> None:
        shot = save_png(screenshot, str(tmp_path / "shot.png"))
        assert _run(catalog_resources, "frame", shot, "--background", "teal") == 1
        assert "Error:" in capsys.readouterr().err

    def test_unreadable_input(self, catalog_resources: ResourcePaths, tmp_path,
                              capsys) -> None:
        assert _run(catalog_resources, "frame", str(tmp_path / "missing.png")) == 1
        assert "Could not load image." in capsys.readouterr().err
