#!/usr/bin/env python3
"""
Sticker Sheet - Command Line Entry Point

Run with: python -m sticker_sheet

Subcommands:
1. process  - Key and cut an existing sheet image into stickers
2. generate - Ask Gemini for a sheet from a prompt, then process it
"""

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Tuple

from .api import GeminiAPIError, generate_sheet_image, get_api_key, load_config
from .config import APP_NAME, APP_VERSION, SUPPORTED_OUTPUT_FORMATS, provider_emits_flat_background
from .core import CutConfig, GridLayout, KeyConfig, StickerPipelineError
from .logging_utils import log_exception, log_info, setup_logging
from .pipeline import parse_key_color, process_sheet, settings_from_config
from .processing import (
    get_unique_folder_name,
    load_pose_list,
    load_sheet_image,
    save_image,
    save_pipeline_result,
)


def _add_pipeline_arguments(parser: argparse.ArgumentParser) -> None:
    """Options shared by both subcommands. Unset options fall back to the config file."""
    parser.add_argument("--poses", type=Path, required=True, help="YAML list of pose texts, row-major.")
    parser.add_argument("--out", type=Path, default=None, help="Output folder (default: ./stickers).")
    parser.add_argument("--rows", type=int, default=None, help="Grid rows.")
    parser.add_argument("--cols", type=int, default=None, help="Grid columns.")
    parser.add_argument("--padding", type=int, default=None, help="Pixels trimmed from each cell side.")
    parser.add_argument(
        "--provider",
        type=str,
        default=None,
        help="Image provider that produced the sheet; keying runs only for flat-background providers.",
    )
    parser.add_argument("--no-key", action="store_true", help="Skip chroma keying.")
    parser.add_argument("--key-color", type=str, default=None, help="Key color as #rrggbb, or 'auto'.")
    parser.add_argument("--tolerance", type=int, default=None, help="Key tolerance (0-255).")
    parser.add_argument("--softness", type=int, default=None, help="Width of the soft edge band.")
    parser.add_argument("--no-smoothing", action="store_true", help="Hard-edged matte.")
    parser.add_argument("--no-spill", action="store_true", help="Disable spill correction.")
    parser.add_argument(
        "--format",
        type=str.upper,
        choices=SUPPORTED_OUTPUT_FORMATS,
        default=None,
        help="Sticker file format.",
    )


def build_settings(args: argparse.Namespace, config: dict) -> Tuple[KeyConfig, CutConfig, GridLayout]:
    """Merge config file settings with command line overrides."""
    key_config, cut_config, layout = settings_from_config(config)

    key_changes = {}
    if args.provider is not None:
        key_changes["enabled"] = provider_emits_flat_background(args.provider)
    if args.no_key:
        key_changes["enabled"] = False
    if args.key_color is not None:
        key_changes["key_color"] = parse_key_color(args.key_color)
    if args.tolerance is not None:
        key_changes["tolerance"] = args.tolerance
    if args.softness is not None:
        key_changes["edge_softness"] = args.softness
    if args.no_smoothing:
        key_changes["edge_smoothing"] = False
    if args.no_spill:
        key_changes["spill_correction"] = False

    cut_changes = {}
    if args.padding is not None:
        cut_changes["padding"] = args.padding
    if args.format is not None:
        cut_changes["output_format"] = args.format

    layout = GridLayout(
        rows=args.rows if args.rows is not None else layout.rows,
        cols=args.cols if args.cols is not None else layout.cols,
    )
    return replace(key_config, **key_changes), replace(cut_config, **cut_changes), layout


def _resolve_out_dir(out: Optional[Path], name: str) -> Path:
    if out is not None:
        return out
    root = Path.cwd() / "stickers"
    return root / get_unique_folder_name(root, name)


def run_process(args: argparse.Namespace, config: dict, sheet=None) -> int:
    """Process one sheet (from --sheet path or an already decoded image)."""
    key_config, cut_config, layout = build_settings(args, config)
    poses = load_pose_list(args.poses)

    if sheet is None:
        print(f"[INFO] Loading sheet: {args.sheet}")
        sheet = load_sheet_image(args.sheet)
        out_dir = _resolve_out_dir(args.out, Path(args.sheet).stem)
    else:
        out_dir = _resolve_out_dir(args.out, "generated")

    print(f"[INFO] Sheet {sheet.width}x{sheet.height}, layout {layout}, {len(poses)} poses")
    print(f"[INFO] Chroma key: {'on' if key_config.enabled else 'off'}")

    result = process_sheet(sheet, poses, layout, key_config, cut_config)

    for sticker in result.stickers:
        if sticker.quality_flag:
            print(f"[WARN] Sticker {sticker.index + 1} ({sticker.pose_text!r}) flagged: {sticker.quality_flag}")
    if result.metadata.fallback_used:
        print("[WARN] Configured cell geometry did not fit; stickers were cut on the raw default grid.")

    save_pipeline_result(result, out_dir)
    print(f"\n[INFO] Done: {len(result.stickers)} stickers in {out_dir}")
    return 0


def run_generate(args: argparse.Namespace, config: dict) -> int:
    """Generate a sheet with Gemini, save the raw sheet, then process it."""
    prompt = args.prompt_file.read_text(encoding="utf-8").strip()
    refs: List[Path] = list(args.ref or [])
    api_key = get_api_key()

    print("[Gemini] Generating pose sheet...")
    sheet = generate_sheet_image(api_key, prompt, refs)

    out_dir = _resolve_out_dir(args.out, args.prompt_file.stem)
    raw_path = save_image(sheet, out_dir / "raw_sheet", "PNG")
    print(f"[INFO] Saved raw sheet to: {raw_path}")

    if args.provider is None:
        args.provider = "gemini"
    args.out = out_dir
    return run_process(args, config, sheet=sheet)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sticker_sheet",
        description=(
            "Turn a 3x3 pose sheet into individual transparent stickers:\n"
            "  - chroma key the flat backdrop (with spill correction)\n"
            "  - cut the grid into one image per pose\n"
            "  - flag cells that look empty"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")
    parser.add_argument("--config", type=Path, default=None, help="Config JSON (default: ~/.sticker_sheet_config.json).")
    sub = parser.add_subparsers(dest="command", required=True)

    process_parser = sub.add_parser("process", help="Key and cut an existing sheet image.")
    process_parser.add_argument("sheet", type=Path, help="Sheet image file.")
    _add_pipeline_arguments(process_parser)

    generate_parser = sub.add_parser("generate", help="Generate a sheet with Gemini, then process it.")
    generate_parser.add_argument("--prompt-file", type=Path, required=True, help="Text file with the sheet prompt.")
    generate_parser.add_argument("--ref", type=Path, action="append", help="Reference image (repeatable).")
    _add_pipeline_arguments(generate_parser)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point."""
    args = build_parser().parse_args(argv)
    setup_logging()
    log_info(f"Command: {args.command}")

    config = load_config(args.config)
    try:
        if args.command == "generate":
            return run_generate(args, config)
        return run_process(args, config)
    except (StickerPipelineError, GeminiAPIError) as e:
        log_exception(f"{args.command} failed")
        print(f"[ERROR] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
