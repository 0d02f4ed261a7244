"""
Genealogical enrichment pipeline.

Starting from a national identifier, people and their relatives are pulled
from the person-lookup service, reconciled with what is already stored, and
persisted as a family tree of people and bidirectional relationship edges.

Modules:
    identifiers: National identifier cleaning, check digits and formatting
    relationships: Relation-code table and relationship inference
    merge: Field merge policy and candidate unions
    base: Import-run tracking shared by the discovery services
    jobs: Background job dispatch for queued full-tree imports
    factory: Wiring of the services from settings

Subpackages:
    integrations: Lookup client, cache and rate limiter
    transformers: Lookup records to canonical fields
    validators: Name, date and sibling validation
    discovery: Identifier discovery and multi-source aggregation
    loaders: Idempotent person and edge persistence
    imports: Single-person discovery and full-tree import

Usage:
    from genealogy.factory import build_lookup_client, build_memory_services
    from schemas.discovery import FullTreeImportPayload

    client = build_lookup_client()
    services = build_memory_services(client)
    result = await services.full_tree.run(
        FullTreeImportPayload(identifier="52998224725", family_tree_id="tree-1")
    )
    print(f"Created {result.persons_created} people")

Error Handling:
    All components raise the structured exceptions of core.exceptions.
    Failures of a single relative or tree node are recorded on the import
    run and never abort the run.
"""
