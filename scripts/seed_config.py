"""Write a starter auction.yaml populated with the default policy."""

import sys
from pathlib import Path

import yaml

from banner_auction.config import DEFAULTS, build_auction_config


def main() -> None:
    target = Path(sys.argv[1]) if len(sys.argv) > 1 else Path.cwd() / "auction.yaml"
    if target.exists():
        raise SystemExit(f"{target} already exists; refusing to overwrite")
    # Round-trip through the validator so a broken DEFAULTS never gets seeded.
    build_auction_config(DEFAULTS, env={})
    target.write_text(
        yaml.safe_dump(DEFAULTS, sort_keys=False, allow_unicode=True),
        encoding="utf-8",
    )
    print(f"Wrote default auction config to {target}")


if __name__ == "__main__":
    main()
