#!/usr/bin/env python3
"""
CLI for TeamsChatExporter
Export Microsoft Teams chats to static HTML archives
"""

import argparse
import logging
import os
import sys

from graph_client import AuthenticationError, GraphClient, RemoteFetchError, token_provider_from_env
from message_renderer import Templates
from teams_html_exporter import TeamsHtmlExporter


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export Microsoft Teams chats to HTML")
    parser.add_argument("--client-id", help="Application (client) ID (or TEAMS_EXPORT_CLIENT_ID)")
    parser.add_argument("--tenant-id", help="Azure AD tenant ID (or TEAMS_EXPORT_TENANT_ID, default: organizations)")
    parser.add_argument(
        "--output-dir",
        default=os.getenv("TEAMS_EXPORT_OUTPUT_DIR", "./teams-export"),
        help="Directory for the HTML files (default: ./teams-export)",
    )
    parser.add_argument("--only", action="append", metavar="NAME",
                        help="Export only the conversation with this name (repeatable)")
    parser.add_argument("--skip", action="append", metavar="ID",
                        help="Never export the conversation with this ID (repeatable)")
    parser.add_argument("--avoid-overwrite", action="store_true",
                        help="Add ' (n)' suffixes instead of replacing existing files")
    parser.add_argument("--templates", help="Directory with conversation.html, message.html and style.css")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='[%(asctime)s] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stdout,
    )

    print("=" * 70)
    print("TeamsChatExporter - HTML Archive Export")
    print("=" * 70)
    print()

    timeout = os.getenv("TEAMS_EXPORT_TIMEOUT_SECONDS")

    try:
        token_provider = token_provider_from_env(args.client_id, args.tenant_id)
        client = GraphClient(token_provider, timeout=float(timeout) if timeout else None)
        exporter = TeamsHtmlExporter(
            client,
            output_dir=args.output_dir,
            only_names=args.only,
            skip_ids=args.skip,
            avoid_overwrite=args.avoid_overwrite,
            templates=Templates.load(args.templates) if args.templates else None,
        )
        summary = exporter.export_all()
    except AuthenticationError as e:
        print(f"Authentication error: {e}")
        return 1
    except RemoteFetchError as e:
        print(f"Error fetching conversations: {e}")
        print("Please check your permissions and try again.")
        return 1
    except KeyboardInterrupt:
        print("\n\nExport interrupted by user.")
        return 1

    print()
    print(f"{len(summary.written)} conversation(s) exported to {args.output_dir}")
    if summary.failed:
        print(f"{len(summary.failed)} conversation(s) failed, see the log above")
    return 0


if __name__ == "__main__":
    sys.exit(main())
