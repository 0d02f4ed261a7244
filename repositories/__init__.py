"""
Repositories implementing the persistence contract.

Modules:
    contracts: Protocols consumed by the discovery pipeline
    people, relationships, imports: SQLAlchemy async implementations
    memory: In-memory implementations for tests and dry runs

Usage:
    from repositories.people import PeopleRepository
    from repositories.memory import InMemoryPeopleRepository
"""
