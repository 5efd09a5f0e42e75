from src.lambdas.efs_cleanup import app
from src.services.efs_sweeper import EFSSweeper
from src.bastion import installer
import argparse
import json
import logging
import sys


# run pip install -e .
# then do your thing
def _load_json(filename: str) -> dict:
    try:
        with open(filename) as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"An error occured reading event file: {e}")
        sys.exit(1)


def invoke_event(args):
    """
    run a saved S3 notification through the cleanup handler
    """
    event = _load_json(args.event_file)
    result = app.process_event(event, root=args.mount_root)
    print(result)
    # same containment as the lambda, the outcome is informational
    return result


def sweep_bucket(args):
    """
    clean up EFS copies for every object already in the bucket
    """
    try:
        sweeper = EFSSweeper(args.bucket, mount_root=args.mount_root)
        results = sweeper.sweep(prefix=args.prefix, dry_run=args.dry_run)
    except RuntimeError as e:
        print(f"An error ocurred sweeping bucket: {e}")
        sys.exit(1)

    counts = {}
    for r in results:
        counts[r.status.value] = counts.get(r.status.value, 0) + 1
    print(json.dumps(counts, indent=2))

    if any(not r.ok for r in results):
        sys.exit(1)
    return results


def install_bastion(args):
    sys.exit(installer.run_install())


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    parser = argparse.ArgumentParser(
        prog='efsclean',
        description='Removes EFS copies of .gz artifacts uploaded to S3, '
        'and provisions the bastion host used to operate the cluster.'
    )

    subparsers = parser.add_subparsers(
        dest='command',
        help='Available commands'
    )

    invoke_parser = subparsers.add_parser(
        'invoke',
        help='Run an S3 event JSON file through the cleanup handler'
    )
    invoke_parser.add_argument('event_file', help='Path to S3 notification JSON')
    invoke_parser.add_argument(
        '--mount-root',
        default=None,
        help='EFS mount root, a trailing slash is added if missing (default: $EFS_MOUNT_PATH or /mnt/efs/)'
    )
    invoke_parser.set_defaults(func=invoke_event)

    sweep_parser = subparsers.add_parser(
        'sweep',
        help='Clean up EFS copies for objects already in a bucket'
    )
    sweep_parser.add_argument('--bucket', '-b', required=True, help='Source S3 bucket')
    sweep_parser.add_argument('--prefix', '-p', default='', help='Only keys under this prefix')
    sweep_parser.add_argument(
        '--mount-root',
        default=None,
        help='EFS mount root, a trailing slash is added if missing (default: $EFS_MOUNT_PATH or /mnt/efs/)'
    )
    sweep_parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Report what would be deleted without deleting'
    )
    sweep_parser.set_defaults(func=sweep_bucket)

    bastion_parser = subparsers.add_parser(
        'install-bastion',
        help='Install kubectl, aws, helm, velero and ansible on this host',
        description=installer.USAGE,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    bastion_parser.set_defaults(func=install_bastion)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    # execute the passed function
    args.func(args)


if __name__ == '__main__':
    main()
