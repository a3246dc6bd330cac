"""Application entry point."""

import asyncio
import logging
import sys

from fintrack.config import get_config
from fintrack.db import close_pool, get_pool
from fintrack.db.schema import schema_version


async def boot() -> None:
    """
    Startup check: load config, open the pool, report schema version.

    Raises:
        SystemExit: On configuration or database errors
    """
    logger = logging.getLogger(__name__)

    try:
        config = get_config()
        logger.info(f"Configuration loaded: env={config.env}")

        for name, present in (
            ("STRIPE_SECRET_KEY", config.stripe_secret_key.get_secret_value()),
            ("STRIPE_WEBHOOK_SECRET", config.stripe_webhook_secret.get_secret_value()),
            ("SUPABASE_URL", config.supabase_url),
        ):
            if not present:
                logger.warning(f"{name} is not set; billing handlers will reject requests")

        await get_pool()
        version = await schema_version()
        if version is None:
            logger.warning("No migrations applied; run fintrack-migrate")
        else:
            logger.info(f"Schema version: {version}")

        await close_pool()
        logger.info("Startup check complete")

    except Exception as e:
        logger.error(f"Boot sequence failed: {e}")
        raise SystemExit(1) from e


def main() -> None:
    """Run the startup check with logging configured."""
    config = get_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        asyncio.run(boot())
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        sys.exit(0)
    except SystemExit:
        raise
    except Exception as e:
        logging.error(f"Unexpected error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
