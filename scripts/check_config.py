"""Validate an exporter configuration and list the metrics it would export."""

from __future__ import annotations

import sys
from pathlib import Path

from knx_exporter.core.config import ConfigError, ConfigService


def main() -> int:
    root = Path(__file__).resolve().parents[1]
    default = root / "config" / "config.example.yaml"
    config_file = Path(sys.argv[1]) if len(sys.argv) > 1 else default
    try:
        settings = ConfigService(config_file=config_file).settings
    except ConfigError as exc:
        print(f"[check-config] {config_file}: {exc}", file=sys.stderr)
        return 1
    for address, address_config in settings.address_configs.items():
        if not address_config.export:
            continue
        kind = address_config.kind.value if address_config.kind else "skipped"
        print(f"{address}\t{settings.name_for(address_config)}\t{kind}\t{address_config.dpt}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
