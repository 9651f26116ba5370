#!/usr/bin/env python3
"""
Run script for the claims adjudication API.

Usage:
    python run_server.py

Settings are read from the environment or a .env file (see src/utils/config.py).
"""

import logging
import os
import sys

# Quiet noisy third-party loggers before anything imports them
logging.getLogger("python_multipart").setLevel(logging.WARNING)
logging.getLogger("python_multipart.multipart").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)
logging.getLogger("openai._base_client").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

# Add src to path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def main():
    """Run the claims API server."""
    import uvicorn
    from src.utils.config import get_settings

    settings = get_settings()

    print("=" * 60)
    print("Claims Adjudication API")
    print("=" * 60)
    print(f"Server: http://{settings.host}:{settings.port}")
    print(f"Database: {settings.database_path}")
    print(f"Document analysis: {settings.document_analysis_provider}")
    print(f"Narrative provider: {settings.narrative_provider}")
    print(f"Statistical scorer: {settings.statistical_provider}")
    print(f"Notifications: {settings.notification_channel}")
    print("=" * 60)
    print()
    print("Endpoints:")
    print(f"  - Health: http://{settings.host}:{settings.port}/health")
    print(f"  - Submit: POST http://{settings.host}:{settings.port}/api/claims")
    print(f"  - Process: POST http://{settings.host}:{settings.port}/api/claims/{{claim_id}}/process")
    print(f"  - Docs: http://{settings.host}:{settings.port}/docs")
    print()

    uvicorn.run(
        "src.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info",
    )


if __name__ == "__main__":
    main()
