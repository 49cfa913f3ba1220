from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Sequence

from .assembler import assemble_content
from .config import load_config, resolve_runtime_secrets
from .dedupe import cache_key
from .errors import (
    ApifyError,
    ConfigError,
    ExtractionError,
    MediaToolError,
    UnsupportedPlatformError,
)
from .orchestrator import UNKNOWN_PLATFORM, ExtractionOrchestrator
from .platforms import detect_platform, supported_platforms
from .run_log import RunLogger


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="social_extract")

    subparsers = parser.add_subparsers(dest="command", required=True)

    detect = subparsers.add_parser(
        "detect",
        help=f"Print the platform a post URL belongs to ({', '.join(supported_platforms())}).",
    )
    detect.add_argument("url", help="Post URL.")
    detect.set_defaults(_handler=_cmd_detect)

    extract = subparsers.add_parser(
        "extract",
        help="Extract caption, transcript and on-screen text from a post URL.",
    )
    extract.add_argument("url", help="Post URL.")
    extract.add_argument(
        "--config",
        required=True,
        help="Path to YAML config file.",
    )
    extract.add_argument(
        "--json",
        action="store_true",
        help="Print the structured result as JSON instead of the assembled text.",
    )
    extract.add_argument(
        "--log",
        default=None,
        help="Write JSON-lines events to this file (default: warnings to stderr).",
    )
    extract.add_argument(
        "--offline",
        action="store_true",
        help="Run without network calls using stub media and text recognition.",
    )
    extract.set_defaults(_handler=_cmd_extract)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _cmd_detect(args: argparse.Namespace) -> int:
    platform = detect_platform(args.url)
    if platform is None:
        raise UnsupportedPlatformError(args.url)
    print(f"platform={platform}")
    print(f"cache_key={cache_key(args.url)}")
    return 0


def _open_logger(args: argparse.Namespace) -> RunLogger:
    if args.log:
        return RunLogger.open(args.log, overwrite=False)
    return RunLogger.to_stream(sys.stderr, min_level="WARN")


def _cmd_extract(args: argparse.Namespace) -> int:
    with _open_logger(args) as log:
        log.info("extract_command_started", config_path=str(args.config), offline=args.offline)

        try:
            cfg = load_config(args.config)
            secrets = resolve_runtime_secrets(cfg)

            if bool(getattr(args, "offline", False)):
                from .offline import offline_recognizer, offline_strategies

                orchestrator = ExtractionOrchestrator(
                    cfg,
                    secrets,
                    logger=log,
                    strategy_factory=offline_strategies,
                    recognizer_factory=offline_recognizer,
                )
            else:
                orchestrator = ExtractionOrchestrator(cfg, secrets, logger=log)

            result = asyncio.run(orchestrator.extract(args.url))
        except Exception as e:
            log.exception("extract_command_failed", exc=e)
            raise

        content = assemble_content(result) if result.success else None

        if args.json:
            payload = {
                "cacheKey": cache_key(args.url),
                "result": result.to_dict(),
                "content": content,
            }
            print(json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True))
        elif content is not None:
            print(content)

        if result.success:
            return 0

        _eprint(result.error or "Extraction failed")
        return 2 if result.platform == UNKNOWN_PLATFORM else 3


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except (ConfigError, UnsupportedPlatformError) as e:
        _eprint(str(e))
        return 2
    except (ApifyError, ExtractionError, MediaToolError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
