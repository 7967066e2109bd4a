"""Command-line entry point for the iris segmentation workbench.

Usage:
    irisseg analyze <image>     Detect pupil and iris circles in an image
    irisseg health              Check that the detection server responds
    irisseg edit <image>        Analyze an image and open the overlay editor
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import cv2

from .config.env_config import RUNTIME_MODES, EnvironmentConfigError, EnvironmentValidator
from .config.settings import Config, load_config
from .core.constants import APP_NAME, VERSION
from .core.context import AppContext
from .core.entities import ImagePayload, OverlayState
from .core.exceptions import AnalysisError
from .core.logging_config import configure_logging_from_config, logging_manager
from .services.dispatch_adapter import DispatchAdapter
from .services.transport_codec import encode_response
from .ui.overlay_renderer import render_overlay
from .utils.image_utils import decode_payload_image
from .utils.result_formatter import format_analysis_error, format_confidence, format_result

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="irisseg", description=APP_NAME)
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("--config", default="config.json", help="Path to JSON config file")
    parser.add_argument("--env-file", help="Path to .env file with IRISSEG_* variables")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    analyze_parser = subparsers.add_parser("analyze", help="Detect pupil and iris in an image")
    analyze_parser.add_argument("image", help="Path to eye image")
    analyze_parser.add_argument("--mode", choices=RUNTIME_MODES, help="Force the processing route")
    analyze_parser.add_argument("--timeout", type=float, help="Engine timeout in seconds")
    analyze_parser.add_argument("--api-url", help="Base URL of the detection server")
    analyze_parser.add_argument("--json", action="store_true", help="Print the raw result JSON")
    analyze_parser.add_argument("--overlay", metavar="PATH",
                                help="Also write the image with the circles drawn on it")

    health_parser = subparsers.add_parser("health", help="Check the detection server")
    health_parser.add_argument("--api-url", help="Base URL of the detection server")

    edit_parser = subparsers.add_parser("edit", help="Analyze an image and open the editor")
    edit_parser.add_argument("image", help="Path to eye image")
    edit_parser.add_argument("--mode", choices=RUNTIME_MODES, help="Force the processing route")
    edit_parser.add_argument("--api-url", help="Base URL of the detection server")

    return parser


def apply_cli_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Command-line options take precedence over file and environment."""
    overrides = {}
    if getattr(args, "mode", None):
        overrides["runtime_mode"] = args.mode
    if getattr(args, "timeout", None) is not None:
        if args.timeout <= 0:
            raise ValueError("--timeout must be positive")
        overrides["engine_timeout_seconds"] = args.timeout
    if getattr(args, "api_url", None):
        try:
            overrides["api_base_url"] = EnvironmentValidator.validate_url(args.api_url.strip())
        except EnvironmentConfigError as e:
            raise ValueError(f"--api-url: {e}") from e
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    return replace(config, **overrides) if overrides else config


def cmd_analyze(context: AppContext, args: argparse.Namespace) -> int:
    """Run one analysis and print the outcome."""
    try:
        payload = ImagePayload.from_file(Path(args.image))
    except (OSError, ValueError) as e:
        print(f"Error: could not read image: {e}", file=sys.stderr)
        return 2

    adapter = DispatchAdapter(context)
    try:
        result = asyncio.run(adapter.process_image(payload))
    except AnalysisError as e:
        logger.debug(f"Analysis failed with kind {e.kind}")
        print(format_analysis_error(e).as_text(), file=sys.stderr)
        return 1

    if args.overlay and not save_overlay(payload, OverlayState(geometry=result), Path(args.overlay)):
        return 2

    if args.json:
        print(encode_response(result).decode("utf-8"))
        return 0

    print(format_result(result))
    confidence = format_confidence(result.eye_confidence, context.config.low_confidence_threshold)
    if confidence is not None:
        print(confidence.body)
    return 0


def save_overlay(payload: ImagePayload, state: OverlayState, path: Path) -> bool:
    """Draw the circles on the analyzed image and write it to ``path``."""
    try:
        frame = render_overlay(decode_payload_image(payload), state)
    except ValueError as e:
        print(f"Error: could not decode image for overlay: {e}", file=sys.stderr)
        return False
    try:
        written = cv2.imwrite(str(path), frame)
    except cv2.error:
        written = False
    if not written:
        print(f"Error: could not write overlay to {path}", file=sys.stderr)
        return False
    logger.info(f"Overlay written to {path}")
    return True


def cmd_health(context: AppContext, args: argparse.Namespace) -> int:
    adapter = DispatchAdapter(context)
    healthy = asyncio.run(adapter.check_health())
    if healthy:
        print(f"Detection server at {adapter.base_url} is healthy")
        return 0
    print(f"Detection server at {adapter.base_url} is not reachable", file=sys.stderr)
    return 1


def cmd_edit(context: AppContext, args: argparse.Namespace) -> int:
    """Open the editor window and start analyzing the image."""
    import tkinter as tk

    from .ui.main_window import EditorWindow

    root = tk.Tk()
    window = EditorWindow(root, context)
    if not window.open_image(Path(args.image)):
        root.destroy()
        return 2
    root.after(100, window.analyze)
    root.mainloop()
    return 0


COMMANDS = {
    "analyze": cmd_analyze,
    "health": cmd_health,
    "edit": cmd_edit,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command not in COMMANDS:
        parser.print_help()
        return 1

    try:
        config = apply_cli_overrides(load_config(args.config, env_file=args.env_file), args)
    except ValueError as e:
        parser.error(str(e))

    configure_logging_from_config(config)
    context = AppContext.create(config)
    try:
        return COMMANDS[args.command](context, args)
    finally:
        logging_manager.shutdown()


if __name__ == "__main__":
    sys.exit(main())
