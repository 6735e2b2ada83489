"""Load a seeded demo fleet into the SQL store (``LIVE_SOURCE=sql``).

Usage:
  DATABASE_URL=sqlite:///ampera.db python -m ampera.seed --seed 7
"""
from __future__ import annotations

import argparse
import logging

from ampera.logging_setup import configure_logging
from ampera.models.db import make_engine
from ampera.services.demo_fleet import seed_database

logger = logging.getLogger(__name__)


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--seed", type=int, default=7)
    parser.add_argument("--database-url", default=None, help="defaults to $DATABASE_URL, then sqlite:///ampera.db")
    args = parser.parse_args(argv)

    configure_logging()
    engine = make_engine(args.database_url)
    n_tel, n_pred = seed_database(engine, seed=args.seed)
    logger.info("Seeded %d telemetry and %d prediction rows into %s", n_tel, n_pred, engine.url)


if __name__ == "__main__":
    main()
