"""Command-line interface for signspell."""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

import yaml

from signspell.config import DEFAULT_API_URL, AppConfig
from signspell.errors import RuntimeStartError

logger = logging.getLogger(__name__)


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    """Add --config and --api-url args to a parser."""
    parser.add_argument(
        "--config", type=str, metavar="PATH",
        help="Path to signspell config YAML file",
    )
    parser.add_argument(
        "--api-url", type=str, default=None,
        help=f"Classifier service URL (default: {DEFAULT_API_URL})",
    )


def _add_detector_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--inline", action="store_true",
        help="Run the detection runtime in-process instead of a subprocess",
    )
    parser.add_argument(
        "--detect-timeout", type=float, default=None,
        help="Seconds to wait for each detection (default: 15)",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="signspell",
        description="signspell - fingerspelling capture pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  signspell run                               # Camera session with preview window
  signspell run --headless --language en      # Commands from stdin, English speech
  signspell detect hand.jpg                   # Landmarks for one image
  signspell test-api                          # Classify the built-in sample pose
  signspell health --api-url http://localhost:8000
""",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    sub = parser.add_subparsers(dest="command", help="Available commands")

    # signspell run
    run_p = sub.add_parser("run", help="Run an interactive capture session")
    _add_config_args(run_p)
    _add_detector_args(run_p)
    run_p.add_argument("--camera", type=int, default=None, help="Camera index (default: 0)")
    run_p.add_argument(
        "--interval", type=int, default=None, metavar="MS",
        help="Auto-capture interval in milliseconds (default: 1500)",
    )
    run_p.add_argument(
        "--language", choices=["en", "sw"], default=None,
        help="Speech language (default: sw)",
    )
    run_p.add_argument("--no-speech", action="store_true", help="Disable speech output")
    run_p.add_argument(
        "--headless", action="store_true",
        help="No preview window; read commands from stdin",
    )

    # signspell runtime
    from signspell.detector.runtime import add_runtime_arguments

    rt_p = sub.add_parser(
        "runtime",
        help="Run a detection runtime bound to an IPC address",
        description="Subprocess entry point used by the process runtime host.",
    )
    add_runtime_arguments(rt_p)

    # signspell detect
    det_p = sub.add_parser("detect", help="Detect hand landmarks in an image file")
    det_p.add_argument("path", help="Path to image file")
    _add_config_args(det_p)
    _add_detector_args(det_p)

    # signspell test-api
    api_p = sub.add_parser("test-api", help="Send the built-in sample pose to the classifier")
    _add_config_args(api_p)

    # signspell health
    health_p = sub.add_parser("health", help="Check the classifier health endpoint")
    _add_config_args(health_p)

    return parser


def load_config(args: argparse.Namespace) -> AppConfig:
    """Build AppConfig from --config plus command-line overrides."""
    config = AppConfig.from_yaml(args.config) if getattr(args, "config", None) else AppConfig()

    if getattr(args, "api_url", None):
        config.classifier.base_url = args.api_url
    if getattr(args, "inline", False):
        config.detector.isolation = "inline"
    if getattr(args, "detect_timeout", None) is not None:
        config.detector.timeout_sec = args.detect_timeout
    if getattr(args, "camera", None) is not None:
        config.camera_index = args.camera
    if getattr(args, "interval", None) is not None:
        config.capture.interval_ms = args.interval
    if getattr(args, "language", None):
        config.speech.language = args.language
    if getattr(args, "no_speech", False):
        config.speech.enabled = False
    return config


def _cmd_run(args: argparse.Namespace, config: AppConfig) -> int:
    from signspell.app import run_session

    return asyncio.run(run_session(config, headless=args.headless, log_level=args.log_level))


def _cmd_runtime(args: argparse.Namespace) -> int:
    from signspell.detector.runtime import run_from_args

    return run_from_args(args)


def _cmd_detect(args: argparse.Namespace, config: AppConfig) -> int:
    from signspell.app import detect_image

    try:
        result = asyncio.run(detect_image(args.path, config.detector, log_level=args.log_level))
    except (IOError, RuntimeStartError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2))
    return 0 if result["detected"] else 3


def _cmd_test_api(config: AppConfig) -> int:
    from signspell.app import run_api_test

    result = run_api_test(config.classifier)
    print(json.dumps(result, indent=2))
    if result["error"]:
        print(f"API Error: {result['error']}", file=sys.stderr)
        return 1
    print(f"API Connected! Sign: {result['letter']} "
          f"Confidence: {result['confidence'] * 100:.1f}%")
    return 0


def _cmd_health(config: AppConfig) -> int:
    from signspell.app import check_health

    healthy = check_health(config.classifier)
    print(f"{config.classifier.base_url}: {'healthy' if healthy else 'unreachable'}")
    return 0 if healthy else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else getattr(logging, args.log_level)
    logging.basicConfig(
        level=level,
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "runtime":
        return _cmd_runtime(args)

    try:
        config = load_config(args)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    if args.command == "run":
        return _cmd_run(args, config)
    if args.command == "detect":
        return _cmd_detect(args, config)
    if args.command == "test-api":
        return _cmd_test_api(config)
    if args.command == "health":
        return _cmd_health(config)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
