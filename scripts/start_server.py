#!/usr/bin/env python3
"""
Knowledge Engine Server Startup Script

This script starts the knowledge engine server using configuration from config.json
"""

import sys
import uvicorn
from pathlib import Path

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from knowledge_engine.main import main as build_app
from knowledge_engine.config import Config


def main():
    """Start the knowledge engine server with configuration"""
    config = Config()
    errors = config.validate()
    if errors:
        for error in errors:
            print(f"ERROR: {error}")
        sys.exit(1)

    server_config = config.get_server_config()
    host = server_config.get('host', '127.0.0.1')
    port = server_config.get('port', 8080)

    print("Starting Knowledge Ingestion & Deduplication Engine")
    print(f"Configuration loaded from: {config.config_path}")
    print(f"Storage backend: {config.get('database', 'backend')} "
          f"({config.get('database', 'persist_directory')})")
    print(f"Embedding model: {config.get('embeddings', 'model')}")
    print(f"Server starting on: http://{host}:{port}")
    print(f"Logs will be written to: {config.get('logging', 'file', default='stderr only')}")
    print("=" * 60)

    uvicorn.run(
        build_app(config),
        host=host,
        port=port,
        log_level=config.get('logging', 'level', default='info').lower()
    )


if __name__ == "__main__":
    main()
