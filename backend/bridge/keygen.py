from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from bridge.core.logging import setup_logging
from bridge.transport.signer import generate_encryption_key_hex, generate_wallet_key_hex

logger = logging.getLogger(__name__)

ENV_TEMPLATE = """# IntentKit XMTP Bridge Configuration
# Generated on {generated_at}

# XMTP Configuration
WALLET_KEY={wallet_key}
ENCRYPTION_KEY={encryption_key}
XMTP_ENV=dev

# IntentKit API Configuration
INTENTKIT_API_URL=https://your-intentkit-api.com
INTENTKIT_API_KEY=your-api-key-here
"""


def render_env(wallet_key: str, encryption_key: str, generated_at: Optional[datetime] = None) -> str:
    """Render the env file template with freshly generated keys."""

    stamp = (generated_at or datetime.now(timezone.utc)).isoformat()
    return ENV_TEMPLATE.format(
        generated_at=stamp, wallet_key=wallet_key, encryption_key=encryption_key
    )


def write_env_file(directory: Path) -> Path:
    """Write generated keys to .env, or .env.new when .env already exists."""

    content = render_env(generate_wallet_key_hex(), generate_encryption_key_hex())
    env_path = directory / ".env"
    if env_path.exists():
        logger.warning(".env file already exists. Creating .env.new instead.")
        env_path = directory / ".env.new"
        if env_path.exists():
            raise FileExistsError(f"{env_path} already exists; remove it first.")
    env_path.write_text(content, encoding="utf-8")
    return env_path


def main() -> None:
    """Generate WALLET_KEY and ENCRYPTION_KEY into an env file."""

    setup_logging("INFO")
    try:
        path = write_env_file(Path.cwd())
    except OSError as exc:
        logger.error("Error generating keys: %s", exc)
        sys.exit(1)
    logger.info("Keys saved to %s", path)
    if path.name != ".env":
        logger.info("Review %s and merge it into your existing .env file.", path.name)
    logger.info("Update INTENTKIT_API_URL and INTENTKIT_API_KEY, then run 'intentkit-bridge'.")


if __name__ == "__main__":
    main()
