"""
Script to run a single-person discovery or a full-tree import
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import create_engine, create_session_maker
from core.exceptions import GenealogyException
from core.logging import setup_logging
from genealogy.factory import build_lookup_client, build_memory_services, open_services
from schemas.discovery import FullTreeImportPayload, PersonDiscoveryPayload

setup_logging()
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Discover people and relatives from a national identifier")
    parser.add_argument("mode", choices=["single", "tree"], help="Single-person discovery or full-tree import")
    parser.add_argument("identifier", help="National identifier of the starting person")
    parser.add_argument("--tree", required=True, dest="family_tree_id", help="Family tree id")
    parser.add_argument("--actor", type=int, default=None, help="Id of the user running the import")
    parser.add_argument("--max-depth", type=int, default=settings.IMPORT_DEFAULT_MAX_DEPTH)
    parser.add_argument("--max-people", type=int, default=settings.IMPORT_DEFAULT_MAX_PEOPLE)
    parser.add_argument("--no-relatives", action="store_true", help="Single mode: skip relatives")
    parser.add_argument("--no-merge", action="store_true", help="Do not merge likely duplicates")
    parser.add_argument("--dry-run", action="store_true", help="Use in-memory repositories")
    return parser.parse_args(argv)


async def run_services(services, args):
    if args.mode == "single":
        return await services.single.run(PersonDiscoveryPayload(
            identifier=args.identifier,
            family_tree_id=args.family_tree_id,
            actor_id=args.actor,
            discover_relatives=not args.no_relatives,
            merge_duplicates=not args.no_merge,
        ))
    return await services.full_tree.run(FullTreeImportPayload(
        identifier=args.identifier,
        family_tree_id=args.family_tree_id,
        actor_id=args.actor,
        max_depth=args.max_depth,
        max_people=args.max_people,
        merge_duplicates=not args.no_merge,
    ))


async def run_import(args):
    """Run one import against the configured database"""
    client = build_lookup_client(settings)
    engine = None

    try:
        if args.dry_run:
            result = await run_services(build_memory_services(client, settings), args)
        else:
            engine = create_engine(settings)
            async with open_services(create_session_maker(engine), client, settings) as services:
                result = await run_services(services, args)

        logger.info(
            f"Import {result.import_id} finished with status {result.status.value}: "
            f"created={result.persons_created}, updated={result.persons_updated}, "
            f"relationships={result.relationships_created}, duplicates={result.duplicates_found}"
        )
        for entry in result.errors:
            logger.warning(f"  {entry.person}: {entry.error}")
        logger.info(f"Cache: {await client.cache.stats()}")

    except GenealogyException as e:
        logger.error(f"Import failed: {e}", extra={"error_context": e.to_dict()})
        sys.exit(1)
    finally:
        await client.aclose()
        if engine is not None:
            await engine.dispose()


if __name__ == "__main__":
    asyncio.run(run_import(parse_args()))
