"""Command-line interface: ``emotikairos export|hr|listen``."""

import argparse
import logging
import os
import sys
from pathlib import Path

from .errors import SyncError
from .listener import DEFAULT_HOST, DEFAULT_PORT, run_listener
from .session import RawDataSession
from .sync import MIN_SYNC_PACKETS


def _export(args):
    session = RawDataSession.from_file(
        args.input_file, min_sync_packets=args.min_sync_packets)
    written = session.export(output_dir=args.output)
    for path in written:
        print(path)

    if args.report:
        from .report import generate_sync_report
        try:
            sync_map = session.sync_map()
        except SyncError as e:
            print(f"No sync report: {e}")
            return 0
        out_dir = Path(args.output) if args.output else session.path.parent
        png_path = out_dir / f"{session.path.stem}_sync_report.png"
        generate_sync_report(session.find_syncs(), sync_map, png_path)
    return 0


def _heart_rate(args):
    session = RawDataSession.from_file(args.input_file)
    try:
        rate = session.mean_heart_rate()
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    print(f"Average heart rate: {rate:.1f} bpm")
    return 0


def _listen(args):
    run_listener(args.host, args.port)
    return 0


def main(argv=None):
    """
    Command-line interface for EmotiBit raw data decoding.
    """
    parser = argparse.ArgumentParser(
        prog="emotikairos",
        description="Decode EmotiBit raw data and map device time to host time"
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Log progress (debug level)'
    )
    sub = parser.add_subparsers(dest='command', required=True)

    p_export = sub.add_parser(
        'export',
        help='Split a raw data file into per-type-tag CSV files'
    )
    p_export.add_argument('input_file', help='Path to raw data .csv file')
    p_export.add_argument(
        '-o', '--output',
        help='Output directory (default: next to the input file)'
    )
    p_export.add_argument(
        '--report',
        action='store_true',
        help='Also write a sync report PNG (needs matplotlib)'
    )
    p_export.add_argument(
        '--min-sync-packets',
        type=int,
        default=MIN_SYNC_PACKETS,
        help=f'Handshake packets needed for a sync map (default: {MIN_SYNC_PACKETS})'
    )
    p_export.set_defaults(func=_export)

    p_hr = sub.add_parser('hr', help='Print the average heart rate')
    p_hr.add_argument('input_file', help='Path to raw data .csv file')
    p_hr.set_defaults(func=_heart_rate)

    p_listen = sub.add_parser(
        'listen',
        help='Decode raw records arriving as UDP datagrams'
    )
    p_listen.add_argument(
        '--host',
        default=DEFAULT_HOST,
        help=f'Address to bind (default: {DEFAULT_HOST})'
    )
    p_listen.add_argument(
        '-p', '--port',
        type=int,
        default=DEFAULT_PORT,
        help=f'UDP port (default: {DEFAULT_PORT})'
    )
    p_listen.set_defaults(func=_listen)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    # Verify input file exists
    input_file = getattr(args, 'input_file', None)
    if input_file is not None and not os.path.exists(input_file):
        print(f"Error: Input file '{input_file}' does not exist")
        return 1

    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
