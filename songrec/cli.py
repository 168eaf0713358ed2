"""Command line interface."""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .core.config import RecognitionConfig, get_settings
from .core.exceptions import SongRecError
from .detection.audio_processor.recorder import AudioRecorder
from .detection.recognizer import SongRec
from .schemas.recognition import RecognitionResult
from .utils.logging import setup_logging
from .utils.output import OutputFormat, csv_header, format_result

FORMAT_CHOICES = [OutputFormat.SIMPLE.value, OutputFormat.JSON.value, OutputFormat.CSV.value]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="songrec", description="An open-source Shazam client library and CLI"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Configuration file (JSON)")

    output_options = argparse.ArgumentParser(add_help=False)
    output_options.add_argument(
        "-f", "--format", choices=FORMAT_CHOICES, default=OutputFormat.SIMPLE.value,
        help="Output format",
    )
    output_options.add_argument(
        "-t", "--template",
        help="Custom output template using {song} {artist} {album} {year} {genre} {timestamp}",
    )
    verbosity = output_options.add_mutually_exclusive_group()
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Suppress debug output (default)")
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Enable debug output")

    subparsers = parser.add_subparsers(dest="command")

    recognize = subparsers.add_parser(
        "recognize", parents=[output_options], help="Recognize a song from an audio file"
    )
    recognize.add_argument("input", help="Input audio file path")

    listen = subparsers.add_parser(
        "listen", parents=[output_options], help="Listen continuously for songs"
    )
    listen.add_argument("-d", "--device", help="Audio input device name")
    listen.add_argument("--no-dedupe", action="store_true", help="Disable request deduplication")

    subparsers.add_parser("devices", help="List available audio input devices")
    return parser


def load_config(args: argparse.Namespace) -> RecognitionConfig:
    config = RecognitionConfig.from_file(args.config) if args.config else get_settings()
    changes = {}
    if getattr(args, "verbose", False):
        changes["quiet_mode"] = False
    elif getattr(args, "quiet", False):
        changes["quiet_mode"] = True
    if getattr(args, "no_dedupe", False):
        changes["deduplicate_requests"] = False
    return config.updated(**changes) if changes else config


def _render(result: RecognitionResult, args: argparse.Namespace) -> str:
    if args.template:
        return format_result(result, OutputFormat.CUSTOM, args.template)
    return format_result(result, args.format)


def run_recognize(args: argparse.Namespace, config: RecognitionConfig) -> int:
    songrec = SongRec(config)
    try:
        result = songrec.recognize_from_file(args.input)
    except SongRecError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        songrec.close()
    print(_render(result, args))
    return 0


def run_listen(args: argparse.Namespace, config: RecognitionConfig) -> int:
    songrec = SongRec(config)
    verbose = not config.quiet_mode
    try:
        stream = songrec.recognize_continuously(args.device)
    except SongRecError as e:
        print(f"Error starting recognition: {e}", file=sys.stderr)
        return 1

    if verbose:
        print("Starting continuous recognition...", file=sys.stderr)
    if args.format == OutputFormat.CSV.value and not args.template:
        print(csv_header(), flush=True)

    try:
        with stream:
            for outcome in stream:
                if isinstance(outcome, RecognitionResult):
                    print(_render(outcome, args), flush=True)
                elif verbose:
                    print(f"Recognition error: {outcome}", file=sys.stderr)
    except KeyboardInterrupt:
        pass
    finally:
        songrec.close()
    return 0


def run_devices() -> int:
    try:
        devices = AudioRecorder.list_input_devices()
    except SongRecError as e:
        print(f"Error listing devices: {e}", file=sys.stderr)
        return 1
    print("Available audio input devices:")
    for index, name in enumerate(devices):
        print(f"  {index}: {name}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args)
    except SongRecError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging("songrec", "WARNING" if config.quiet_mode else "DEBUG", config.log_file)

    command = args.command
    if command is None and config.continuous_recognition:
        args = parser.parse_args([*(argv if argv is not None else sys.argv[1:]), "listen"])
        command = "listen"

    if command == "recognize":
        return run_recognize(args, config)
    if command == "listen":
        return run_listen(args, config)
    if command == "devices":
        return run_devices()

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
