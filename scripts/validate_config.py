#!/usr/bin/env python3
"""
App registry validation script for the StatEnv gateway.
This script validates a registry file (.statenvrc and friends) and lists
the secrets it references.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from service_gateway.app.registry import (
    AppRegistry,
    RegistryError,
    find_config_file,
    read_config,
    validate_config,
)
from shared.secrets_manager import SecretsManager


def main(argv: Optional[List[str]] = None) -> int:
    """Validate one registry file and print the report."""
    parser = argparse.ArgumentParser(description="Validate a StatEnv app registry")
    parser.add_argument("path", nargs="?", help="Registry file (default: search the current directory)")
    parser.add_argument("--check-secrets", action="store_true",
                        help="Report referenced secrets missing from the environment")
    args = parser.parse_args(argv)

    config_path = Path(args.path) if args.path else find_config_file()
    if config_path is None or not config_path.is_file():
        print("❌ No config file found")
        return 1

    print(f"Validating {config_path}...")

    try:
        raw = read_config(config_path)
    except RegistryError as e:
        print(f"❌ {e}")
        return 1

    report = validate_config(raw)

    for warning in report.warnings:
        print(f"⚠️  {warning}")

    if not report.valid:
        print(f"❌ {len(report.errors)} validation errors")
        for error in report.errors:
            print(f"   - {error}")
        return 1

    registry = AppRegistry.from_dict(raw)
    secrets = registry.required_secrets()

    print(f"✅ {len(registry)} app(s) valid: {', '.join(registry.list_apps())}")
    print("\nRequired secrets:")
    for name in secrets:
        print(f"   - {name}")

    if args.check_secrets:
        missing = SecretsManager().missing_secrets(secrets)
        if missing:
            print(f"\n❌ {len(missing)} secret(s) not set: {', '.join(missing)}")
            return 1
        print("\nAll secrets are set")

    return 0


if __name__ == "__main__":
    sys.exit(main())
