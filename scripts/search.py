#!/usr/bin/env python3
"""
Command-line search and browsing.
Prints JSON so results can be piped into other tools.
"""

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from lore.core.errors import ConfigurationError
from lore.core.search_service import about, list_domain, list_domains, projects, search
from lore.vector.hybrid import hybrid_search_sync
from lore.vector.semantic import semantic_search


def run_search(args):
    sources = args.source or None
    if sources and len(sources) == 1:
        sources = sources[0]

    if args.mode == "lexical":
        results = search(args.query, source=sources, type=args.type, topic=args.topic,
                         since=args.since, limit=args.limit)
    elif args.mode == "semantic":
        results = semantic_search(args.query, source=sources, type=args.type,
                                  topic=args.topic, limit=args.limit)
    else:
        results = hybrid_search_sync(args.query, source=sources, type=args.type,
                                     topic=args.topic, limit=args.limit)
    return {"query": args.query, "mode": args.mode, "results": [r.to_dict() for r in results]}


def run_list(args):
    if args.domains or not args.domain:
        return {"domains": list_domains()}
    return asdict(list_domain(args.domain, limit=args.limit, project=args.project))


def run_about(args):
    result = about(args.project, limit=args.limit)
    return {"project": result.project, "total": result.total,
            "sections": {source: asdict(section) for source, section in result.sections.items()}}


def main(argv=None):
    """Search or browse the index."""
    load_dotenv()

    parser = argparse.ArgumentParser(description="Search and browse the Lore knowledge index")
    commands = parser.add_subparsers(dest="command", required=True)

    search_cmd = commands.add_parser("search", help="Ranked search")
    search_cmd.add_argument("query")
    search_cmd.add_argument("--mode", choices=["lexical", "semantic", "hybrid"], default="hybrid")
    search_cmd.add_argument("--source", action="append", help="Repeat for several sources")
    search_cmd.add_argument("--type")
    search_cmd.add_argument("--topic")
    search_cmd.add_argument("--since", help="Lexical mode only")
    search_cmd.add_argument("--limit", type=int, default=20)
    search_cmd.set_defaults(handler=run_search)

    list_cmd = commands.add_parser("list", help="Browse a domain, newest first")
    list_cmd.add_argument("domain", nargs="?")
    list_cmd.add_argument("--domains", action="store_true", help="Show the available domains")
    list_cmd.add_argument("--limit", type=int, default=None)
    list_cmd.add_argument("--project")
    list_cmd.set_defaults(handler=run_list)

    projects_cmd = commands.add_parser("projects", help="Known project names")
    projects_cmd.set_defaults(handler=lambda args: {"projects": projects()})

    about_cmd = commands.add_parser("about", help="Everything about one project")
    about_cmd.add_argument("project")
    about_cmd.add_argument("--limit", type=int, default=10)
    about_cmd.set_defaults(handler=run_about)

    args = parser.parse_args(argv)

    try:
        output = args.handler(args)
    except (ConfigurationError, ValueError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    print(json.dumps(output, indent=2))


if __name__ == "__main__":
    main()
