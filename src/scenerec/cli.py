"""
Command-line interface for Scene Rec.

Provides commands for reconstructing a scene and writing a default config.
"""

import argparse
import sys

from scenerec.config import save_default_config
from scenerec.errors import SceneRecError
from scenerec.tracer import configure_tracer, get_tracer


def build_parser():
    """Argument parser with the run and init-config subcommands."""
    parser = argparse.ArgumentParser(
        prog="scenerec",
        description="Scene Rec: reconstruct planes and line depths from calibrated views",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Reconstruct a scene")
    run_parser.add_argument(
        "--scene", "-s",
        required=True,
        help="Scene input JSON (SceneInput dump)",
    )
    run_parser.add_argument(
        "--out", "-o",
        required=True,
        help="Path of the result JSON to write",
    )
    run_parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to YAML configuration file",
    )
    run_parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable runtime tracing",
    )
    run_parser.add_argument(
        "--trace-level",
        default="INFO",
        choices=["ERROR", "WARN", "INFO", "DEBUG"],
        help="Trace log level",
    )
    run_parser.add_argument(
        "--trace-file",
        default=None,
        help="Path to write trace logs",
    )
    run_parser.add_argument(
        "--trace-json",
        action="store_true",
        help="Enable JSON trace output",
    )

    # Init config command
    init_parser = subparsers.add_parser("init-config", help="Create default config file")
    init_parser.add_argument(
        "--out", "-o",
        default="scenerec_config.yaml",
        help="Output path for config file",
    )

    return parser


def main(argv=None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "run":
        return handle_run(args)
    elif args.command == "init-config":
        return handle_init_config(args)

    return 0


def handle_run(args):
    """Handle the run command."""
    configure_tracer(
        enabled=args.trace,
        level=args.trace_level,
        file_path=args.trace_file,
        json_output=args.trace_json,
    )

    tracer = get_tracer()

    try:
        from scenerec.models import SceneInput
        from scenerec.pipeline import reconstruct_scene

        with tracer.span("cli_run", module="cli"):
            with open(args.scene, "r", encoding="utf-8") as f:
                scene = SceneInput.model_validate_json(f.read())

            result = reconstruct_scene(scene, config_path=args.config)

            with open(args.out, "w", encoding="utf-8") as f:
                f.write(result.model_dump_json(indent=2))

    except (SceneRecError, ValueError, OSError) as e:
        tracer.event(f"Reconstruction failed: {str(e)}", level="ERROR")
        print(f"\nError: {str(e)}", file=sys.stderr)
        return 1
    finally:
        tracer.config.close()

    print("\nReconstruction completed.")
    print(f"  Scene scale: {result.scene_scale:.6g}")
    print(f"  Region CCs: {len(result.region_ccs)}")
    print(f"  Line CCs: {len(result.line_ccs)}")
    print(f"  Subgraphs: {len(result.subgraphs)}")
    print(f"  Validation errors: {result.validation.error_count}")
    print(f"  Validation warnings: {result.validation.warning_count}")
    print(f"\nResult saved to: {args.out}")

    if result.validation.has_errors:
        print("\n[!] Validation errors detected. Review the validation section of the result")
        return 1

    return 0


def handle_init_config(args):
    """Handle the init-config command."""
    save_default_config(args.out)
    print(f"Default configuration saved to: {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
