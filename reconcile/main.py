"""
Main entry point for the reconciliation workflow engine.
"""

import json
import sys
from datetime import date
from typing import Optional

from reconcile.components.importer import ImportBatch, ImportResult
from reconcile.config import Config, get_config
from reconcile.persistence import JsonFileSink, NullSink
from reconcile.session import ReconciliationSession
from reconcile.utils.logging import setup_logging
from reconcile.utils import dict_to_json_string


logger = setup_logging(__name__)


def load_import_batch_from_file(batch_file: str) -> ImportBatch:
    """
    Load a {left: [...], right: [...]} import batch from a JSON file.

    The file name becomes the batch name unless the file sets one.
    """
    with open(batch_file, 'r') as f:
        data = json.load(f)

    if isinstance(data, dict):
        data.setdefault("name", batch_file)
    batch = ImportBatch.model_validate(data)

    logger.info(f"Loaded {len(batch.left)} left and {len(batch.right)} right rows from {batch_file}")
    return batch


def open_session(config: Optional[Config] = None) -> ReconciliationSession:
    """Open a session backed by the configured persistence sink."""
    if config is None:
        config = get_config()

    if config.PERSISTENCE_PATH:
        return ReconciliationSession.from_sink(JsonFileSink(config.PERSISTENCE_PATH), config=config)
    return ReconciliationSession(config=config, sink=NullSink())


def import_file(
    session: ReconciliationSession,
    batch_file: str,
    for_date: Optional[str] = None,
    user_id: Optional[str] = None,
) -> ImportResult:
    """Import a JSON batch file as the given user (defaults to the configured operator)."""
    actor = session.resolve_user(user_id or session.config.DEFAULT_OPERATOR_ID)
    batch = load_import_batch_from_file(batch_file)
    working_date = for_date or date.today().isoformat()

    result = session.import_transactions(batch, actor, working_date)
    logger.info(f"Import complete: {result.imported} imported, {result.skipped} skipped")
    return result


def format_summary_json(session: ReconciliationSession) -> str:
    """Format the session summary as a JSON string."""
    return dict_to_json_string(session.get_summary())


if __name__ == "__main__":
    if len(sys.argv) > 1:
        batch_file = sys.argv[1]
        for_date = sys.argv[2] if len(sys.argv) > 2 else None

        session = open_session()
        import_file(session, batch_file, for_date)
        print(format_summary_json(session))
    else:
        print("Usage: python -m reconcile.main <batch.json> [YYYY-MM-DD]")
