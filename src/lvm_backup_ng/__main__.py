# pyright: standard

"""lvm-backup-ng: lvm_backup_ng/__main__.py.

Backup LVM logical volumes through temporary snapshots.
Requires Python >= 3.11, lvm2, kpartx and tar (or the mirror command).
"""

import sys

from . import __version__
from .__logger__ import create_logger
from .cli import create_parser, execute
from .cli.common import get_log_level


def main(argv=None) -> int:
    """Main function."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"lvm-backup-ng {__version__}")
        return 0

    create_logger(get_log_level(args), getattr(args, "log_file", None))
    return execute(args)


if __name__ == "__main__":
    sys.exit(main())
