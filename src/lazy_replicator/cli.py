"""
Command-line interface for the lazy storage replicator.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .client import MultiStorageClient
from .config import load_config
from .exceptions import ReplicatorError
from .location import StorageLocation
from .utils.logging import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='lazy-replicator',
        description='Lazily replicated object storage across Azure Blob Storage and AWS S3'
    )
    parser.add_argument('--config', help='YAML config file (default: $REPLICATOR_CONFIG or replicator.yaml)')
    parser.add_argument('--container', help='Azure Blob Storage container name')
    parser.add_argument('--bucket', help='AWS S3 bucket name')
    parser.add_argument('--log-level', help='Logging level (overrides config)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    locate = subparsers.add_parser('locate', help='Show which storages hold an object')
    locate.add_argument('path')

    exists = subparsers.add_parser('exists', help='Exit 0 if the object exists anywhere, 1 otherwise')
    exists.add_argument('path')

    list_cmd = subparsers.add_parser('list', help='List object names in either storage')
    list_cmd.add_argument('prefix', nargs='?', default='')

    get = subparsers.add_parser('get', help='Download an object, replicating it if necessary')
    get.add_argument('path')
    get.add_argument('destination')
    get.add_argument('--no-replicate', action='store_true', help='Download without replicating')

    cat = subparsers.add_parser('cat', help='Write an object to stdout')
    cat.add_argument('path')

    put = subparsers.add_parser('put', help='Upload a local file')
    put.add_argument('source')
    put.add_argument('path')
    put.add_argument('--target', default='both', choices=['azure', 's3', 'both'])
    put.add_argument('--content-type')

    delete = subparsers.add_parser('delete', help='Delete objects from both storages')
    delete.add_argument('paths', nargs='+')

    return parser


async def run_command(client: MultiStorageClient, args: argparse.Namespace) -> int:
    """Execute one parsed command against an initialized client"""
    scopes = {'container_name': args.container, 'bucket_name': args.bucket}

    if args.command == 'locate':
        location = await client.locate(args.path, **scopes)
        print(location.label)
        return 0

    if args.command == 'exists':
        found = await client.exists(args.path, **scopes)
        print('yes' if found else 'no')
        return 0 if found else 1

    if args.command == 'list':
        for name in await client.list_names(args.prefix, **scopes):
            print(name)
        return 0

    if args.command == 'get':
        if args.no_replicate:
            source = await client.read_to_path(args.path, args.destination, **scopes)
            logger.info(f"Downloaded {args.path} from {source.label}")
        else:
            result = await client.read_to_path_with_replication(args.path, args.destination, **scopes)
            if result.replicated:
                logger.info(f"Replicated {args.path} to {result.replicated_to.label}")
        return 0

    if args.command == 'cat':
        data = await client.read(args.path, **scopes)
        sys.stdout.buffer.write(data)
        sys.stdout.flush()
        return 0

    if args.command == 'put':
        targets = StorageLocation.parse(args.target)
        landed = await client.write(
            args.source, args.path, targets, content_type=args.content_type, **scopes
        )
        print(landed.label)
        return 0 if landed == targets else 1

    if args.command == 'delete':
        await client.delete_many(args.paths, **scopes)
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        setup_logging(args.log_level or config.log_level, structured=config.structured_logs)
        config.validate()
        client = MultiStorageClient.from_config(config)
        return asyncio.run(run_command(client, args))
    except (ReplicatorError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
