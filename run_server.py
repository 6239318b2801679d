#!/usr/bin/env python3
"""
Bibliographic Reconciliation Engine - Server Launcher
Runs the FastAPI backend server
"""

import os
import sys
import subprocess
from loguru import logger

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = os.getenv("PORT", "8000")

    logger.info("🚀 Starting Bibliographic Reconciliation API Server")
    logger.info(f"📍 Server will be available at: http://localhost:{port}")
    logger.info(f"📚 API Documentation: http://localhost:{port}/docs")

    try:
        # Change to server directory
        server_dir = os.path.join(os.path.dirname(__file__), "server")
        os.chdir(server_dir)

        subprocess.run([
            sys.executable, "-m", "uvicorn",
            "reconciler.api.main:app",
            "--host", host,
            "--port", port,
            "--log-level", os.getenv("LOG_LEVEL", "info").lower()
        ])
    except KeyboardInterrupt:
        logger.info("🛑 Server stopped by user")
    except Exception as e:
        logger.error(f"❌ Server error: {e}")
        logger.exception(e)
        sys.exit(1)
