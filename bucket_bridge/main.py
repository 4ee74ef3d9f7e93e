#!/usr/bin/env python3
"""
Command line entry point for Bucket Bridge.

Thin front end over ``StorageService``: every subcommand resolves a saved
connection, runs one storage operation and prints the result as JSON.
"""

import argparse
import asyncio
import dataclasses
import json
import sys
from pathlib import Path
from typing import Any

import structlog

from bucket_bridge.core.storage_service import FolderDeleteResult, StorageService
from bucket_bridge.storage.exceptions import RegionMismatchError, StorageError
from bucket_bridge.storage.file_utils import DOWNLOAD, URL_OPERATIONS
from bucket_bridge.utils.env_config import get_settings
from bucket_bridge.utils.logging_config import configure_logging

logger = structlog.get_logger(__name__)


def _output_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


async def cmd_types(service: StorageService, args: argparse.Namespace) -> int:
    _output_json(service.get_supported_client_types())
    return 0


async def cmd_connections(service: StorageService, args: argparse.Namespace) -> int:
    if args.connections_command == "add":
        with open(args.file, "r", encoding="utf-8") as f:
            record = json.load(f)
        connections = service.save_connection(record)
    elif args.connections_command == "remove":
        connections = service.delete_connection(args.connection_id)
    else:
        connections = service.list_connections()

    # Secrets stay out of the output
    _output_json([
        c.model_dump(by_alias=True, exclude_none=True, exclude={"secret_key", "account_key"})
        for c in connections
    ])
    return 0


async def cmd_ls(service: StorageService, args: argparse.Namespace) -> int:
    result = await service.list_objects(args.connection, args.bucket, args.prefix or "")
    _output_json(result.to_dict())
    return 0


async def cmd_url(service: StorageService, args: argparse.Namespace) -> int:
    print(await service.get_object_url(args.connection, args.bucket, args.key, args.operation))
    return 0


async def cmd_upload(service: StorageService, args: argparse.Namespace) -> int:
    key = args.key or Path(args.file).name
    result = await service.upload_file(args.connection, args.bucket, key, args.file)
    _output_json(result.to_dict())
    return 0


async def cmd_download(service: StorageService, args: argparse.Namespace) -> int:
    path = await service.download_object(args.connection, args.bucket, args.key, args.destination)
    _output_json({"success": True, "path": str(path)})
    return 0


async def cmd_rm(service: StorageService, args: argparse.Namespace) -> int:
    result = await service.delete_object(args.connection, args.bucket, args.key, is_folder=args.folder)
    _output_json(result.to_dict())
    if isinstance(result, FolderDeleteResult) and result.result.errors:
        return 2
    return 0


async def cmd_mkdir(service: StorageService, args: argparse.Namespace) -> int:
    result = await service.create_folder(args.connection, args.bucket, args.path)
    _output_json(result.to_dict())
    return 0


async def cmd_preview(service: StorageService, args: argparse.Namespace) -> int:
    result = await service.preview_object(args.connection, args.bucket, args.key)
    if result.is_text and not args.json:
        print(result.content)
    else:
        _output_json(result.to_dict())
    return 0


COMMANDS = {
    "types": cmd_types,
    "connections": cmd_connections,
    "ls": cmd_ls,
    "url": cmd_url,
    "upload": cmd_upload,
    "download": cmd_download,
    "rm": cmd_rm,
    "mkdir": cmd_mkdir,
    "preview": cmd_preview,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="bucket-bridge",
        description="Browse and manage S3, PCG, Azure Blob and Aliyun OSS storage",
    )
    parser.add_argument(
        "--connections-file",
        metavar="PATH",
        help="Settings document holding saved connections (default: CONNECTIONS_FILE)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("types", help="List supported storage types")

    connections_parser = subparsers.add_parser("connections", help="Manage saved connections")
    connections_subparsers = connections_parser.add_subparsers(dest="connections_command")
    connections_subparsers.add_parser("list", help="List saved connections")
    add_parser = connections_subparsers.add_parser("add", help="Save a connection from a JSON file")
    add_parser.add_argument("file", metavar="PATH", help="JSON connection record")
    remove_parser = connections_subparsers.add_parser("remove", help="Delete a saved connection")
    remove_parser.add_argument("connection_id", metavar="ID")

    ls_parser = subparsers.add_parser("ls", help="List buckets or one folder level")
    ls_parser.add_argument("connection", metavar="CONNECTION_ID")
    ls_parser.add_argument("--bucket", help="Bucket to list (connection default if omitted)")
    ls_parser.add_argument("--prefix", default="", help="Folder path (connection default if omitted)")

    url_parser = subparsers.add_parser("url", help="Print a view or download URL")
    url_parser.add_argument("connection", metavar="CONNECTION_ID")
    url_parser.add_argument("bucket")
    url_parser.add_argument("key")
    url_parser.add_argument("--operation", choices=URL_OPERATIONS, default=DOWNLOAD)

    upload_parser = subparsers.add_parser("upload", help="Upload a local file")
    upload_parser.add_argument("connection", metavar="CONNECTION_ID")
    upload_parser.add_argument("bucket")
    upload_parser.add_argument("file", metavar="PATH")
    upload_parser.add_argument("--key", help="Object key (file name if omitted)")

    download_parser = subparsers.add_parser("download", help="Download an object to a local path")
    download_parser.add_argument("connection", metavar="CONNECTION_ID")
    download_parser.add_argument("bucket")
    download_parser.add_argument("key")
    download_parser.add_argument("destination", nargs="?", default=".", metavar="PATH")

    rm_parser = subparsers.add_parser("rm", help="Delete an object or a folder")
    rm_parser.add_argument("connection", metavar="CONNECTION_ID")
    rm_parser.add_argument("bucket")
    rm_parser.add_argument("key")
    rm_parser.add_argument("--folder", action="store_true", help="Delete the folder and everything below it")

    mkdir_parser = subparsers.add_parser("mkdir", help="Create a folder marker")
    mkdir_parser.add_argument("connection", metavar="CONNECTION_ID")
    mkdir_parser.add_argument("bucket")
    mkdir_parser.add_argument("path")

    preview_parser = subparsers.add_parser("preview", help="Show text content or a preview URL")
    preview_parser.add_argument("connection", metavar="CONNECTION_ID")
    preview_parser.add_argument("bucket")
    preview_parser.add_argument("key")
    preview_parser.add_argument("--json", action="store_true", help="Print the preview envelope as JSON")

    return parser


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point.

    Exit codes:
        0: Success
        1: Storage or connection error
        2: Folder delete finished with per-key failures
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    settings = get_settings()
    if args.connections_file:
        settings = dataclasses.replace(settings, connections_file=args.connections_file)
    configure_logging(settings)

    service = StorageService(settings)
    try:
        return asyncio.run(COMMANDS[args.command](service, args))
    except RegionMismatchError as e:
        logger.warning("Region mismatch", configured=e.configured_region, expected=e.expected_region)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except StorageError as e:
        logger.error("Storage operation failed", command=args.command, error=e.message, code=e.error_code)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
