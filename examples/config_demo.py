#!/usr/bin/env python3
"""
Configuration Loading Demo

This script demonstrates the various ways to load and validate
lambda-autofix configuration.
"""

import os
import sys
import tempfile
from pathlib import Path

# Add src to path for running from examples directory
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from lambda_autofix.config import AutoFixConfig
from lambda_autofix.exceptions import ConfigurationError


def demo_default_config():
    """Demonstrate the built-in defaults."""
    print("=" * 70)
    print("DEMO 1: Default Configuration")
    print("=" * 70)

    config = AutoFixConfig()
    print(f"Auto-fix enabled: {config.auto_fix_enabled}")
    print(f"Max concurrent fixes: {config.max_concurrent_fixes}")
    print(f"Cooldown: {config.cooldown_seconds}s")
    print(f"Error threshold: {config.error_threshold} errors / {config.window_minutes} minutes")
    print(f"Circuit breaker threshold: {config.circuit_breaker_threshold}")
    print(f"Alias: {config.alias_name}")
    print()


def demo_env_config():
    """Demonstrate loading configuration from environment variables."""
    print("=" * 70)
    print("DEMO 2: Environment Variable Configuration")
    print("=" * 70)

    os.environ["LAMBDA_AUTOFIX_RESOURCES"] = "orders-api,billing-worker"
    os.environ["LAMBDA_AUTOFIX_AUTO_FIX_ENABLED"] = "true"
    os.environ["LAMBDA_AUTOFIX_COOLDOWN_SECONDS"] = "600"

    config = AutoFixConfig.from_env()

    print(f"Resources: {', '.join(config.resources)}")
    print(f"Auto-fix enabled: {config.auto_fix_enabled}")
    print(f"Cooldown: {config.cooldown_seconds}s")
    print()

    for key in ["LAMBDA_AUTOFIX_RESOURCES", "LAMBDA_AUTOFIX_AUTO_FIX_ENABLED",
                "LAMBDA_AUTOFIX_COOLDOWN_SECONDS"]:
        os.environ.pop(key, None)


def demo_yaml_config():
    """Demonstrate loading a sectioned YAML file with an env override."""
    print("=" * 70)
    print("DEMO 3: YAML Configuration File")
    print("=" * 70)

    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        f.write("""
resources:
  - orders-api
  - billing-worker

remediation:
  auto_fix_enabled: true
  max_concurrent_fixes: 2
  cooldown_seconds: 900
  run_deadline_seconds: 240

policy:
  error_threshold: 10
  min_confidence: high

state:
  file: ~/.lambda-autofix/state.db
""")
        config_file = f.name

    try:
        os.environ["LAMBDA_AUTOFIX_MAX_CONCURRENT_FIXES"] = "4"
        config = AutoFixConfig.from_file(config_file)

        print(f"Loaded from: {config_file}")
        print(f"Resources: {', '.join(config.resources)}")
        print(f"Max concurrent fixes: {config.max_concurrent_fixes} (from env override)")
        print(f"Cooldown: {config.cooldown_seconds}s")
        print(f"Run deadline: {config.run_deadline_seconds}s")
        print(f"Min confidence: {config.min_confidence_level.value}")
        print(f"State file: {config.state_file}")
        print()

    finally:
        os.unlink(config_file)
        os.environ.pop("LAMBDA_AUTOFIX_MAX_CONCURRENT_FIXES", None)


def demo_validation():
    """Demonstrate configuration validation."""
    print("=" * 70)
    print("DEMO 4: Configuration Validation")
    print("=" * 70)

    for label, config in [
        ("valid", AutoFixConfig(resources=["orders-api"])),
        ("no resources", AutoFixConfig()),
        ("bad ceilings", AutoFixConfig(resources=["orders-api"], timeout_ceiling_seconds=1200,
                                       memory_ceiling_mb=64)),
    ]:
        print(f"Testing {label} configuration...")
        try:
            config.validate()
            print("✓ Configuration is valid")
        except ConfigurationError as e:
            print(f"✗ Validation failed: {e}")
        print()


def main():
    """Run all configuration demos."""
    print("\nlambda-autofix Configuration Loading Demonstration\n")

    demo_default_config()
    demo_env_config()
    demo_yaml_config()
    demo_validation()

    print("=" * 70)
    print("All demos completed!")
    print("=" * 70)


if __name__ == "__main__":
    main()
