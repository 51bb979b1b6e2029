import os
from glob import glob
from typing import List, Optional

from tqdm import tqdm

from chat_parser.api import default_pipeline_factory
from chat_parser.config import Settings, configure_logging, load_settings
from chat_parser.db import Database
from chat_parser.exceptions import ChatParserError
from chat_parser.extraction import ExtractionPipeline
from chat_parser.repository import insert_messages


# -----------------------------
# Helper functions
# -----------------------------
def load_text_file(path: str) -> str:
    """Load content from a TXT file."""
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read()


def find_chat_logs(data_dir: str) -> List[str]:
    return sorted(glob(os.path.join(data_dir, "*.txt")))


# -----------------------------
# Main import function
# -----------------------------
def import_chat_logs(
    settings: Settings,
    database: Database,
    pipeline: Optional[ExtractionPipeline] = None,
) -> dict:
    """
    Run every TXT file in `settings.data_dir` through the extraction pipeline
    and store the results. A file that fails is reported and skipped.

    Returns a summary: {"files": n, "messages": n, "failed": {name: error}}.
    """
    txt_paths = find_chat_logs(settings.data_dir)
    summary = {"files": len(txt_paths), "messages": 0, "failed": {}}

    if not txt_paths:
        print(f"⚠️ No TXT files found in `{settings.data_dir}` directory.")
        return summary

    print(f"📄 Found {len(txt_paths)} TXT files.")
    pipeline = pipeline or default_pipeline_factory(settings)

    for file_path in tqdm(txt_paths, desc="Parsing chat logs", unit="file"):
        name = os.path.basename(file_path)
        try:
            result = pipeline.extract(load_text_file(file_path))
        except ChatParserError as e:
            tqdm.write(f"❌ {name}: {e}")
            summary["failed"][name] = str(e)
            continue

        stored = insert_messages(database, result.messages)
        summary["messages"] += len(stored)
        note = " (manual fallback)" if result.fallback else ""
        tqdm.write(f"✅ {name}: {len(stored)} messages{note}")

    print(
        f"\n✅ Finished importing {summary['messages']} messages "
        f"from {len(txt_paths) - len(summary['failed'])} of {len(txt_paths)} files."
    )
    return summary


def main():
    configure_logging()
    settings = load_settings()

    if not settings.openai_api_key:
        raise SystemExit("OPENAI_API_KEY is not set")
    if not settings.database_url:
        raise SystemExit("DATABASE_URL (or PG_HOST) is not set")

    summary = import_chat_logs(settings, Database(settings.database_url))
    if summary["failed"]:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
