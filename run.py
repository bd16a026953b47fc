"""Standalone FastAPI server entry point.

Run with: python run.py
"""
import logging
import os

import uvicorn

# Configure logging to show debug info
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def main():
    uvicorn.run(
        "ai_sandbox.fastapi_app:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
    )


if __name__ == "__main__":
    main()
