#!/usr/bin/env python
"""Reindex benchmark over a synthetic note corpus.

Generates notes with random wiki links, imports them into a throwaway
database, then times a full rebuild, an unchanged incremental pass and an
incremental pass after editing a fraction of the notes. Results are saved to
benchmarks/results/<timestamp>.json.

Usage:
    python scripts/reindex_benchmark.py
    python scripts/reindex_benchmark.py --notes 5000 --links 8 --edit-ratio 0.05
    python scripts/reindex_benchmark.py --label "after relink pass"
"""

import argparse
import json
import logging
import platform
import random
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path

from notegraph_mcp.models.db_models import init_db
from notegraph_mcp.observability import configure_logging
from notegraph_mcp.services.import_service import ImportService
from notegraph_mcp.services.reindex_service import ReindexService
from notegraph_mcp.storage.unit_of_work import sqlalchemy_uow_factory

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
BENCHMARKS_DIR = PROJECT_ROOT / "benchmarks" / "results"

logger = logging.getLogger("notegraph_mcp.reindex_benchmark")


# ---------------------------------------------------------------------------
# Corpus
# ---------------------------------------------------------------------------
def write_corpus(root: Path, count: int, links_per_note: int, rng: random.Random) -> list:
    """Write ``count`` notes linking to random titles (10% of them dangling)."""
    titles = [f"Note {i:05d}" for i in range(count)]
    paths = []
    for title in titles:
        targets = []
        for _ in range(links_per_note):
            if rng.random() < 0.1:
                targets.append(f"[[Missing {rng.randint(0, count)}]]")
            else:
                target = rng.choice(titles)
                targets.append(f"[[{target}|{target.lower()}]]")
        body = f"# {title}\n\nSee " + ", ".join(targets) + ".\n\n```\n[[Not A Link]]\n```\n"
        path = root / f"{title}.md"
        path.write_text(body, encoding="utf-8")
        paths.append(path)
    return paths


def edit_notes(paths: list, ratio: float, rng: random.Random) -> int:
    """Append a line to a random ``ratio`` of the notes."""
    chosen = rng.sample(paths, max(1, int(len(paths) * ratio)))
    for path in chosen:
        with path.open("a", encoding="utf-8") as f:
            f.write(f"\nEdited, see [[Note {rng.randint(0, len(paths) - 1):05d}]].\n")
    return len(chosen)


def timed(label: str, func):
    start = time.perf_counter()
    result = func()
    elapsed = (time.perf_counter() - start) * 1000
    logger.info(f"{label}: {elapsed:.1f}ms")
    return result, elapsed


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main():
    parser = argparse.ArgumentParser(description="Reindex benchmark")
    parser.add_argument("--label", "-l", default="", help="Label for this run")
    parser.add_argument("--notes", type=int, default=2000, help="Number of notes")
    parser.add_argument("--links", type=int, default=5, help="Links per note")
    parser.add_argument("--edit-ratio", type=float, default=0.05, help="Share of notes edited")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    args = parser.parse_args()

    configure_logging(level=logging.INFO, console=True)
    rng = random.Random(args.seed)
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    logger.info("=" * 60)
    logger.info(f"REINDEX BENCHMARK - {timestamp} {args.label}")
    logger.info("=" * 60)

    with tempfile.TemporaryDirectory() as tmp:
        tmp_path = Path(tmp)
        notes_dir = tmp_path / "notes"
        notes_dir.mkdir()
        paths = write_corpus(notes_dir, args.notes, args.links, rng)

        engine = init_db(f"sqlite:///{tmp_path / 'bench.db'}")
        uow_factory = sqlalchemy_uow_factory(engine)
        importer = ImportService(uow_factory)
        reindexer = ReindexService(uow_factory, store_key="benchmark", record_runs=True)

        _, import_ms = timed("import", lambda: importer.import_directory(notes_dir))
        full, full_ms = timed("full reindex", lambda: reindexer.reindex(full=True))
        noop, noop_ms = timed("unchanged reindex", lambda: reindexer.reindex())

        edited = edit_notes(paths, args.edit_ratio, rng)
        importer.import_directory(notes_dir)
        partial, partial_ms = timed(f"reindex after {edited} edits", lambda: reindexer.reindex())
        engine.dispose()

    results = {
        "timestamp": timestamp,
        "label": args.label,
        "system": {"platform": platform.platform(), "python": platform.python_version()},
        "params": vars(args),
        "import_ms": import_ms,
        "full": {"ms": full_ms, **full.to_dict()},
        "unchanged": {"ms": noop_ms, **noop.to_dict()},
        "edited": {"ms": partial_ms, "edited_notes": edited, **partial.to_dict()},
    }

    BENCHMARKS_DIR.mkdir(parents=True, exist_ok=True)
    out_file = BENCHMARKS_DIR / f"{timestamp}.json"
    out_file.write_text(json.dumps(results, indent=2))
    logger.info(f"Results saved to {out_file}")


if __name__ == "__main__":
    main()
