#!/usr/bin/env python3
"""
Startup script for the Social Media Automator API.

Runs the FastAPI application, including the background queue processor,
with uvicorn.
"""

import os
import sys
import uvicorn

# Add src directory to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))


def main():
    """Start the FastAPI application."""
    from social_automator.config import DEBUG, HOST, PORT

    print(f"🚀 Starting Social Media Automator API on {HOST}:{PORT}")
    print(f"📚 API Documentation: http://{HOST}:{PORT}/docs")
    print(f"🔍 Health Check: http://{HOST}:{PORT}/api/health")

    uvicorn.run(
        "social_automator.api.main:app",
        host=HOST,
        port=PORT,
        reload=DEBUG,
        log_level="debug" if DEBUG else "info",
        access_log=False,
    )


if __name__ == "__main__":
    main()
