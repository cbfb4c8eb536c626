#!/usr/bin/env python3
"""
Token Ledger Entry Point

Opens (or creates) the ledger configured through TOKEN_LEDGER_* environment
variables and prints its supply summary.

    TOKEN_LEDGER_DATABASE_URL=sqlite:///token_ledger.db \
        python run.py <creator-address> <fee-recipient-address>
"""

import json
import sys

from token_ledger.config import get_config
from token_ledger.errors import TokenError
from token_ledger.logging_config import setup_logging
from token_ledger.storage import create_storage
from token_ledger.token import TokenLedger


def main(argv) -> int:
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    storage = create_storage(config.database_url)

    try:
        if storage.exists(TokenLedger.STATE_TABLE, TokenLedger.METADATA_KEY):
            ledger = TokenLedger.attach(storage, config=config)
        elif len(argv) == 2:
            ledger = TokenLedger.create(argv[0], argv[1], storage=storage, config=config)
        else:
            print("usage: run.py <creator-address> <fee-recipient-address>", file=sys.stderr)
            return 2

        summary = ledger.verify_conservation()
        summary.update(
            name=ledger.name,
            symbol=ledger.symbol,
            owner=ledger.owner(),
            fee_recipient=ledger.fee_recipient()
        )
        print(json.dumps(summary, indent=2, default=str))
        return 0 if summary['valid'] else 1
    except TokenError as e:
        logger.error(f"Ledger error: {e.code}: {e.message}")
        return 1
    finally:
        storage.close()


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
