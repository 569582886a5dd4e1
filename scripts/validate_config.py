#!/usr/bin/env python3
"""
Configuration Validation Script

Validates knowledge engine configuration files for correctness and completeness.
"""

import json
import sys
from pathlib import Path

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from knowledge_engine.config import DEFAULT_CONFIG, validate_config_dict

REQUIRED_SECTIONS = ['chunking', 'embeddings', 'deduplication', 'database', 'server']


def validate_config(config_path: str = "config.json") -> bool:
    """Validate configuration file"""
    config_file = Path(config_path)
    if not config_file.exists():
        print(f"ERROR: Configuration file not found: {config_path}")
        return False

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        print(f"ERROR: Invalid JSON in configuration file: {e}")
        return False

    print(f"SUCCESS: Configuration file loaded: {config_path}")

    missing_sections = [section for section in REQUIRED_SECTIONS if section not in config]
    if missing_sections:
        print(f"ERROR: Missing required sections: {missing_sections}")
        return False

    unknown_sections = sorted(set(config) - set(DEFAULT_CONFIG))
    if unknown_sections:
        print(f"WARNING: Unknown sections will be ignored: {unknown_sections}")

    errors = validate_config_dict(config)
    if errors:
        print("ERROR: Configuration errors found:")
        for error in errors:
            print(f"   - {error}")
        return False

    print("SUCCESS: Configuration validation passed!")
    print(f"Storage: {config['database'].get('backend', 'memory')}")
    print(f"Embedding model: {config['embeddings'].get('model')}")
    print(f"Server: {config['server'].get('host')}:{config['server'].get('port')}")
    return True


def main():
    """Main validation function"""
    config_path = sys.argv[1] if len(sys.argv) > 1 else "config.json"

    print(f"Validating knowledge engine configuration: {config_path}")
    print("=" * 60)

    if validate_config(config_path):
        print("=" * 60)
        print("Configuration is valid and ready to use!")
        sys.exit(0)
    else:
        print("=" * 60)
        print("Configuration validation failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
