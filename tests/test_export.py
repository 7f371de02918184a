from __future__ import annotations

import pytest
import yaml
from PIL import Image, features

from sticker_sheet.core.exceptions import ConfigError, UnsupportedFormat
from sticker_sheet.core.models import CutConfig, KeyConfig
from sticker_sheet.pipeline import process_sheet
from sticker_sheet.processing.export import load_pose_list, save_pipeline_result
from sticker_sheet.processing.image_utils import load_sheet_image, save_image


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return path


def test_plain_pose_list_marks_first_as_original(tmp_path) -> None:
    path = _write(tmp_path / "poses.yml", "- waving hello\n- thumbs up\n- '  crying  '\n")

    poses = load_pose_list(path)

    assert [p.index for p in poses] == [0, 1, 2]
    assert [p.text for p in poses] == ["waving hello", "thumbs up", "crying"]
    assert [p.is_original for p in poses] == [True, False, False]


def test_mapping_pose_list_keeps_explicit_original(tmp_path) -> None:
    path = _write(
        tmp_path / "poses.yml",
        "poses:\n"
        "  - text: thumbs up\n"
        "  - text: waving hello\n"
        "    original: true\n"
        "  - crying\n",
    )

    poses = load_pose_list(path)

    assert [p.text for p in poses] == ["thumbs up", "waving hello", "crying"]
    assert [p.is_original for p in poses] == [False, True, False]


def test_mapping_without_original_defaults_to_first(tmp_path) -> None:
    path = _write(tmp_path / "poses.yml", "- text: a\n- text: b\n")
    assert [p.is_original for p in load_pose_list(path)] == [True, False]


@pytest.mark.parametrize(
    "content",
    ["[]\n", "poses: []\n", "just a string\n", "- text: ok\n- {pose: missing}\n", "42\n"],
)
def test_bad_pose_lists_are_rejected(tmp_path, content) -> None:
    path = _write(tmp_path / "poses.yml", content)
    with pytest.raises(ConfigError):
        load_pose_list(path)


def test_save_pipeline_result_writes_sheet_stickers_and_manifest(tmp_path, sheet_factory, nine_poses) -> None:
    result = process_sheet(sheet_factory(empty_cells=(8,)), nine_poses)
    out_dir = tmp_path / "out"

    manifest_path = save_pipeline_result(result, out_dir)

    assert manifest_path == out_dir / "stickers.yml"
    assert (out_dir / "sheet.png").is_file()
    for number in range(1, 10):
        assert (out_dir / f"sticker_{number:02d}.png").is_file()

    saved = Image.open(out_dir / "sticker_01.png")
    assert saved.mode == "RGBA"
    assert saved.tobytes() == result.stickers[0].image.tobytes()

    manifest = yaml.safe_load(manifest_path.read_text(encoding="utf-8"))
    assert manifest["sheet"] == "sheet.png"
    assert len(manifest["stickers"]) == 9

    first = manifest["stickers"][0]
    assert first["file"] == "sticker_01.png"
    assert first["pose"] == nine_poses[0].text
    assert first["original"] is True
    assert first["bounds"] == {"x": 0, "y": 0, "width": 100, "height": 100}
    assert manifest["stickers"][8]["quality_flag"] == "suspect"

    meta = manifest["metadata"]
    assert meta["layout"] == {"rows": 3, "cols": 3}
    assert meta["keying_applied"] is True
    assert meta["key_color"] == [0, 255, 0]
    assert meta["fallback_used"] is False
    assert meta["quality_warnings"] == {8: ["suspect"]}


def test_opaque_result_is_saved_without_alpha(tmp_path, sheet_factory, nine_poses) -> None:
    result = process_sheet(sheet_factory(), nine_poses, key_config=KeyConfig(enabled=False))
    manifest_path = save_pipeline_result(result, tmp_path)

    assert Image.open(tmp_path / "sticker_05.png").mode == "RGB"
    manifest = yaml.safe_load(manifest_path.read_text(encoding="utf-8"))
    assert {s["quality_flag"] for s in manifest["stickers"]} == {"no-alpha"}
    assert manifest["metadata"]["key_color"] is None


@pytest.mark.skipif(not features.check("webp"), reason="Pillow built without WEBP")
def test_webp_stickers_use_webp_extension(tmp_path, sheet_factory, nine_poses) -> None:
    result = process_sheet(sheet_factory(), nine_poses, cut_config=CutConfig(output_format="WEBP"))
    save_pipeline_result(result, tmp_path)

    assert (tmp_path / "sticker_01.webp").is_file()
    assert (tmp_path / "sheet.png").is_file()


def test_load_sheet_image_normalizes_palette(tmp_path) -> None:
    img = Image.new("P", (8, 8), 3)
    path = save_image(img, tmp_path / "palette", "PNG")

    loaded = load_sheet_image(path)
    assert loaded.mode == "RGB"

    assert load_sheet_image(path.read_bytes()).mode == "RGB"


def test_load_sheet_image_rejects_garbage() -> None:
    with pytest.raises(UnsupportedFormat):
        load_sheet_image(b"not an image")
