"""Run one periodic sweep against the configured store.

Meant to be invoked by an external scheduler (cron, systemd timer, ...):

    python -m assessment_engine.sweep --database-url sqlite:///./assessment.db
"""

import argparse
import json
import logging

from .config import get_settings
from .database import Store
from .engine import AssessmentEngine
from .logging_config import configure_logging

logger = logging.getLogger(__name__)


def run_sweep(database_url: str, settings=None) -> dict:
    settings = settings or get_settings()
    with Store(database_url, echo=settings.echo_sql) as store:
        return AssessmentEngine(store, settings=settings).sweep()


def main(argv=None) -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Settle overdue attempts and emit exam window events")
    parser.add_argument("--database-url", default=settings.database_url)
    parser.add_argument("--log-level", default=settings.log_level)
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    result = run_sweep(args.database_url, settings)
    logger.info("Sweep finished")
    print(json.dumps(result))


if __name__ == "__main__":
    main()
