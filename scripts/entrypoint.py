import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("entrypoint")


def main() -> None:
  """Launch the API while keeping migrations in the deploy pipeline."""
  logger.info("Starting Curricula API (run alembic upgrade head in deploy pipeline)...")
  port = os.getenv("PORT", "3001")
  # Replace the current process so uvicorn receives SIGTERM directly.
  args = ["uvicorn", "curricula.main:app", "--host", "0.0.0.0", "--port", port, "--no-server-header"]
  os.execvp("uvicorn", args)


if __name__ == "__main__":
  main()
