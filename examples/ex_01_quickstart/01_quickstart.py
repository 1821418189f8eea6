"""Quickstart: register factories, build a provider, resolve a service.

Factories receive a resolver and pull their own dependencies from it, so
resolving the top-level service builds the full chain.
"""

from __future__ import annotations

from diloom import ServiceCollection, create_token


class Database:
    def __init__(self, host: str) -> None:
        self.host = host


class UserRepository:
    def __init__(self, database: Database) -> None:
        self.database = database


class UserService:
    def __init__(self, repository: UserRepository) -> None:
        self.repository = repository


DatabaseHost = create_token("DatabaseHost")


def main() -> None:
    services = ServiceCollection()
    services.add_singleton(DatabaseHost, "localhost")
    services.add_singleton(Database, lambda resolver: Database(resolver.resolve(DatabaseHost)))
    services.add_transient(UserRepository, lambda resolver: UserRepository(resolver.resolve(Database)))
    services.add_transient(UserService, lambda resolver: UserService(resolver.resolve(UserRepository)))

    provider = services.build()
    service = provider.resolve(UserService)

    print(f"db_host={service.repository.database.host}")  # => db_host=localhost

    chain = (
        f"{type(service).__name__}"
        f">{type(service.repository).__name__}"
        f">{type(service.repository.database).__name__}"
    )
    print(f"chain={chain}")  # => chain=UserService>UserRepository>Database


if __name__ == "__main__":
    main()
