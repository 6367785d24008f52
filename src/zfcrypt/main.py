#!/usr/bin/env python3
# --- START OF FILE zfcrypt/main.py ---
import argparse
import json
import sys
from typing import List, Optional

from zfcrypt import __version__, constants
from zfcrypt.context import CommandContext
from zfcrypt.debug_logging import log, set_debug_mode
from zfcrypt.encryption import (
    EncryptionCLIProber, EncryptionInspector, EncryptionStatus, LoadKeyUsageDetector, VersionDetector,
    ZfsFatalError, ZfsKeyNotLoadedError,
)
from zfcrypt.zfs_command import ZfsError

DETECTORS = {
    "usage": LoadKeyUsageDetector,
    "version": VersionDetector,
}


def build_parser() -> argparse.ArgumentParser:
    class RawDefaultsHelpFormatter(argparse.ArgumentDefaultsHelpFormatter, argparse.RawDescriptionHelpFormatter):
        pass

    parser = argparse.ArgumentParser(
        prog="zfcrypt",
        description="Report ZFS native encryption support and per-dataset key status",
        formatter_class=RawDefaultsHelpFormatter,
        epilog=(
            "Examples:\n"
            "  zfcrypt supported\n"
            "  zfcrypt --json status tank/secure tank/plain\n"
            "  zfcrypt check-send tank/secure && zfs send tank/secure@snap | ...\n\n"
            f"Set {constants.ENV_ENCRYPTION_CLI_SUPPORTED}=true|false to override detection."
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("--timeout", type=float, default=None,
                        help="Overall deadline in seconds for all zfs invocations")
    parser.add_argument("--detector", choices=sorted(DETECTORS), default="usage",
                        help="How to detect encryption support")
    parser.add_argument("--log-commands", action="store_true",
                        help="Append every zfs invocation to the configured command_log_file")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("supported", help="Check whether zfs supports native encryption")
    status = sub.add_parser("status", help="Show encryption and key status of datasets")
    status.add_argument("datasets", nargs="+", metavar="DATASET")
    check = sub.add_parser("check-send", help="Exit non-zero if a live send of DATASET must not start")
    check.add_argument("--raw", action="store_true", help="The send is raw (zfs send -w)")
    check.add_argument("dataset", metavar="DATASET")
    return parser


def _emit(args, payload: dict, text: str):
    if args.json:
        print(json.dumps(payload, indent=2))
    else:
        print(text)


def run(argv: Optional[List[str]] = None, inspector: Optional[EncryptionInspector] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.debug:
        set_debug_mode(True)

    if args.timeout is not None:
        ctx = CommandContext.with_timeout(args.timeout, log_enabled=args.log_commands)
    else:
        ctx = CommandContext(log_enabled=args.log_commands)
    if inspector is None:
        inspector = EncryptionInspector(EncryptionCLIProber(DETECTORS[args.detector]()))

    try:
        if args.command == "supported":
            supported = inspector.prober.is_supported(ctx)
            _emit(args, {"supported": supported},
                  "native encryption supported" if supported else "native encryption not supported")
            return constants.EXIT_OK if supported else constants.EXIT_ERROR

        if args.command == "status":
            results = []
            for dataset in args.datasets:
                enc = inspector.encryption_status(ctx, dataset)
                key = inspector.key_status(ctx, dataset) if enc is EncryptionStatus.ENABLED else None
                results.append({"dataset": dataset, "encryption": enc.value,
                                "key": key.value if key else None})
            text = "\n".join(f"{r['dataset']}\tencryption={r['encryption']}\tkey={r['key'] or '-'}" for r in results)
            _emit(args, {"datasets": results}, text)
            return constants.EXIT_OK

        if args.command == "check-send":
            try:
                inspector.check_send_allowed(ctx, args.dataset, raw=args.raw)
            except ZfsKeyNotLoadedError as e:
                _emit(args, {"dataset": args.dataset, "allowed": False, "reason": str(e)}, f"refused: {e}")
                return constants.EXIT_ERROR
            _emit(args, {"dataset": args.dataset, "allowed": True}, "allowed")
            return constants.EXIT_OK
    except ZfsFatalError as e:
        log("CLI", f"zfs returned an impossible value: {e}", "CRITICAL")
        return constants.EXIT_FATAL
    except ZfsError as e:
        log("CLI", str(e), "ERROR")
        return constants.EXIT_ERROR
    return constants.EXIT_ERROR


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()

# --- END OF FILE zfcrypt/main.py ---
