"""
Pose list loading and sticker export.

Reads the pose list a sheet was generated from, and writes a finished
PipelineResult to disk: the processed sheet, one image per sticker, and a
stickers.yml manifest describing each one.
"""

from pathlib import Path
from typing import Any, Dict, List, Sequence

import yaml

from ..config import MANIFEST_FILENAME, SHEET_FILENAME, STICKER_FILENAME_TEMPLATE
from ..core.exceptions import ConfigError
from ..core.models import PipelineResult, PoseDescriptor
from ..logging_utils import log_info
from .image_utils import save_image


def poses_from_texts(texts: Sequence[str]) -> List[PoseDescriptor]:
    """
    Build row-major PoseDescriptors from pose texts.

    The first text is the user's original pose; the rest are variants.
    """
    return [
        PoseDescriptor(index=i, text=str(text).strip(), is_original=(i == 0))
        for i, text in enumerate(texts)
    ]


def load_pose_list(path: Path) -> List[PoseDescriptor]:
    """
    Load poses from a YAML file.

    Two shapes are accepted:

        - "waving hello"           # plain list; first entry is the original
        - "thumbs up"

        poses:                     # or a mapping with explicit flags
          - text: "waving hello"
            original: true
          - text: "thumbs up"

    Args:
        path: YAML file path.

    Returns:
        PoseDescriptors in file order.

    Raises:
        ConfigError: If the file is not a list of strings or pose mappings.
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if isinstance(data, dict):
        data = data.get("poses")
    if not isinstance(data, list) or not data:
        raise ConfigError(f"{path} must contain a non-empty list of poses")

    if all(isinstance(item, str) for item in data):
        return poses_from_texts(data)

    poses: List[PoseDescriptor] = []
    for i, item in enumerate(data):
        if isinstance(item, str):
            poses.append(PoseDescriptor(index=i, text=item.strip(), is_original=(i == 0)))
        elif isinstance(item, dict) and "text" in item:
            poses.append(PoseDescriptor(
                index=i,
                text=str(item["text"]).strip(),
                is_original=bool(item.get("original", False)),
            ))
        else:
            raise ConfigError(f"Pose #{i} in {path} has no text: {item!r}")

    if not any(p.is_original for p in poses):
        poses[0] = PoseDescriptor(index=0, text=poses[0].text, is_original=True)
    return poses


def build_manifest(result: PipelineResult, files: Sequence[Path]) -> Dict[str, Any]:
    """Manifest dict for a result whose stickers were saved as `files`."""
    stickers = []
    for sticker, path in zip(result.stickers, files):
        b = sticker.bounds
        stickers.append({
            "index": sticker.index,
            "file": path.name,
            "pose": sticker.pose_text,
            "original": sticker.is_original,
            "bounds": {"x": b.x, "y": b.y, "width": b.width, "height": b.height},
            "quality_flag": sticker.quality_flag,
        })
    return {
        "metadata": result.metadata.to_dict(),
        "stickers": stickers,
    }


def save_pipeline_result(result: PipelineResult, out_dir: Path) -> Path:
    """
    Write the processed sheet, every sticker, and the manifest.

    Args:
        result: Finished pipeline result.
        out_dir: Destination folder (created if missing).

    Returns:
        Path to the written stickers.yml manifest.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    sheet_path = save_image(result.sheet, out_dir / SHEET_FILENAME, "PNG")
    print(f"[INFO] Saved processed sheet to: {sheet_path}")

    files: List[Path] = []
    for sticker in result.stickers:
        stem = out_dir / STICKER_FILENAME_TEMPLATE.format(number=sticker.index + 1)
        files.append(save_image(sticker.image, stem, sticker.output_format))

    manifest = build_manifest(result, files)
    manifest["sheet"] = sheet_path.name

    manifest_path = out_dir / MANIFEST_FILENAME
    with manifest_path.open("w", encoding="utf-8") as f:
        yaml.dump(manifest, f, sort_keys=False, allow_unicode=True)

    log_info(f"Exported {len(files)} stickers to {out_dir}")
    print(f"[INFO] Wrote sticker manifest to: {manifest_path}")
    return manifest_path
