"""Command-line interface for the HLTB resolver."""

from __future__ import annotations

import argparse
import json
import logging
import os
import shlex
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import BATCH
from .errors import ValidationError
from .matching.matcher import TitleMatcher
from .matching.overrides import load_override_tables
from .models import BatchItem, CandidateRecord, ResolvedGameData, SearchOptions
from .service import HLTBService, build_service
from .utils import read_csv, write_csv

HLTB_COLUMNS = {
    "HLTB_Name": "name",
    "HLTB_Main": "main_story",
    "HLTB_Extra": "main_extra",
    "HLTB_Completionist": "completionist",
    "HLTB_AllStyles": "all_styles",
    "HLTB_Source": "source",
    "HLTB_Confidence": "confidence",
    "HLTB_MatchMethod": "match_method",
}


def setup_logging(log_file: Path) -> None:
    """Configure logging to both console and file."""
    log_file.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        "%(asctime)s.%(msecs)03d - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)

    # Console goes to stderr so `lookup --json` output stays parseable.
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)

    logging.info(f"Logging to file: {log_file}")


def _default_log_file(*, command_name: str, logs_dir: Path) -> Path:
    logs_dir.mkdir(parents=True, exist_ok=True)

    now = datetime.now()
    stamp = now.strftime("%Y%m%d-%H%M%S") + f".{now.microsecond // 1000:03d}"
    candidate = logs_dir / f"log-{stamp}-{command_name}.log"
    if not candidate.exists():
        return candidate
    return logs_dir / f"log-{stamp}-{command_name}-{os.getpid()}.log"


def _setup_logging_from_args(args: argparse.Namespace, *, command_name: str) -> None:
    setup_logging(args.log_file or _default_log_file(command_name=command_name, logs_dir=Path("logs")))
    if args.debug:
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)
        for handler in root_logger.handlers:
            handler.setLevel(logging.DEBUG)
        logging.getLogger("urllib3").setLevel(logging.DEBUG)

    argv = " ".join(shlex.quote(a) for a in sys.argv)
    logging.info(f"Invocation: {argv}")


def _service_from_args(args: argparse.Namespace) -> HLTBService:
    return build_service(
        cache_path=args.cache_file,
        overrides_path=args.overrides,
        dataset_path=args.dataset,
        community_url=args.community_url,
    )


def _fmt_hours(value: float | None) -> str:
    return "-" if value is None else f"{value:g}h"


def _describe(data: ResolvedGameData) -> str:
    if data.skip:
        return f"{data.title}: skipped ({data.reason})"
    src = data.source if not data.cached_from else f"{data.source} <- {data.cached_from}"
    method = f", {data.match_method}" if data.match_method else ""
    return (
        f"{data.title} -> {data.name} [{src}, {data.confidence}{method}] "
        f"main={_fmt_hours(data.main_story)} extra={_fmt_hours(data.main_extra)} "
        f"completionist={_fmt_hours(data.completionist)} all={_fmt_hours(data.all_styles)} "
        f"({data.retrieval_ms}ms)"
    )


def _command_lookup(args: argparse.Namespace) -> None:
    _setup_logging_from_args(args, command_name="lookup")
    service = _service_from_args(args)
    options = SearchOptions(
        skip_cache=bool(args.no_cache),
        skip_api=bool(args.skip_api),
        skip_scraping=bool(args.skip_scraping),
        skip_fallback=bool(args.skip_fallback),
    )
    try:
        data = service.get_game_data(args.title, args.platform_id, options)
    except ValidationError as e:
        raise SystemExit(f"Invalid input ({e.field}): {e}")
    finally:
        service.close()

    if args.json:
        print(json.dumps(data.to_dict() if data else None, ensure_ascii=False, indent=2))
    elif data is None:
        print(f"{args.title}: no data found")
    else:
        print(_describe(data))
    logging.info(f"[HLTB] {service.format_stats()}")


def _row_values(data: ResolvedGameData | None) -> dict[str, str]:
    if data is None or data.skip:
        return {col: "" for col in HLTB_COLUMNS}
    raw = data.to_dict()
    out: dict[str, str] = {}
    for col, attr in HLTB_COLUMNS.items():
        v: Any = raw.get(attr)
        out[col] = "" if v is None else (f"{v:g}" if isinstance(v, float) else str(v))
    return out


def _command_batch(args: argparse.Namespace) -> None:
    _setup_logging_from_args(args, command_name="batch")
    if not args.input.exists():
        raise SystemExit(f"Input file not found: {args.input}")
    df = read_csv(args.input)
    if args.name_col not in df.columns:
        raise SystemExit(f"Missing column {args.name_col!r} in {args.input}")
    has_ids = args.id_col in df.columns

    items: list[BatchItem] = []
    for _, row in df.iterrows():
        title = str(row.get(args.name_col, "") or "").strip()
        pid = str(row.get(args.id_col, "") or "").strip() if has_ids else ""
        items.append(BatchItem(title=title, platform_id=pid or None))

    service = _service_from_args(args)
    try:
        results = service.batch_fetch(
            [it for it in items if it.title],
            chunk_size=args.chunk_size,
        )
    finally:
        service.close()

    rows = [_row_values(results.get(it.key)) for it in items]
    for col in HLTB_COLUMNS:
        df[col] = [r[col] for r in rows]
    write_csv(df, args.output)

    found = sum(1 for it in items if results.get(it.key) is not None)
    logging.info(f"✔ HLTB batch completed: {args.output} ({found}/{len(items)} resolved)")
    logging.info(f"[HLTB] {service.format_stats()}")


def _command_explain(args: argparse.Namespace) -> None:
    _setup_logging_from_args(args, command_name="explain")
    matcher = TitleMatcher(load_override_tables(args.overrides))
    candidates = [CandidateRecord(game_id=i + 1, name=name) for i, name in enumerate(args.candidates)]
    result = matcher.find_best_match(args.title, candidates, year=args.year)
    details = matcher.get_match_details(args.title, candidates)
    details["result"] = (
        None
        if result is None
        else {
            "name": result.candidate.name if result.candidate else None,
            "method": result.method,
            "confidence": round(result.confidence, 4),
            "skip": result.skip,
        }
    )
    print(json.dumps(details, ensure_ascii=False, indent=2))


def main(argv: list[str] | None = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        raise SystemExit(
            "Missing command. Use one of: lookup, batch, explain. "
            "Run `hltb-resolver --help` for usage."
        )

    parser = argparse.ArgumentParser(description="Resolve game titles to HowLongToBeat completion times")
    sub = parser.add_subparsers(dest="command", required=True)

    p_common = argparse.ArgumentParser(add_help=False)
    p_common.add_argument(
        "--cache-file",
        type=Path,
        help="JSON file backing the result cache (default: in-memory only)",
    )
    p_common.add_argument(
        "--overrides",
        type=Path,
        help="Title overrides YAML (default: bundled title_overrides.yaml)",
    )
    p_common.add_argument(
        "--dataset",
        type=Path,
        help="Fallback dataset YAML (default: bundled fallback_games.yaml)",
    )
    p_common.add_argument(
        "--community-url",
        type=str,
        default=None,
        help="URL of a community dataset JSON to merge into the fallback (default: none)",
    )
    p_common.add_argument(
        "--log-file",
        type=Path,
        help="Log file path (default: logs/log-<timestamp>-<command>.log)",
    )
    p_common.add_argument("--debug", action="store_true", help="Enable DEBUG logging (default: INFO)")

    p_lookup = sub.add_parser("lookup", help="Resolve a single title", parents=[p_common])
    p_lookup.add_argument("title", type=str, help="Game title as it appears in the catalog")
    p_lookup.add_argument("--platform-id", type=str, default=None, help="Platform id (digits only)")
    p_lookup.add_argument("--skip-api", action="store_true", help="Do not call the HLTB API")
    p_lookup.add_argument("--skip-scraping", action="store_true", help="Do not scrape the HLTB site")
    p_lookup.add_argument("--skip-fallback", action="store_true", help="Do not use the local dataset")
    p_lookup.add_argument("--no-cache", action="store_true", help="Bypass the cache read")
    p_lookup.add_argument("--json", action="store_true", help="Print the result as JSON")
    p_lookup.set_defaults(_fn=_command_lookup)

    p_batch = sub.add_parser(
        "batch",
        help="Resolve every row of a CSV and write HLTB_* columns",
        parents=[p_common],
    )
    p_batch.add_argument("input", type=Path, help="Input CSV")
    p_batch.add_argument("output", type=Path, help="Output CSV")
    p_batch.add_argument("--name-col", type=str, default="Name", help="Title column (default: Name)")
    p_batch.add_argument(
        "--id-col", type=str, default="AppId", help="Platform id column, if present (default: AppId)"
    )
    p_batch.add_argument(
        "--chunk-size",
        type=int,
        default=BATCH.chunk_size,
        help=f"Titles per chunk (default: {BATCH.chunk_size})",
    )
    p_batch.set_defaults(_fn=_command_batch)

    p_explain = sub.add_parser(
        "explain",
        help="Show normalization and similarity scores of a title against candidate names",
        parents=[p_common],
    )
    p_explain.add_argument("title", type=str, help="Catalog title")
    p_explain.add_argument("candidates", nargs="+", help="Candidate names to score")
    p_explain.add_argument("--year", type=int, default=None, help="Release year hint")
    p_explain.set_defaults(_fn=_command_explain)

    ns = parser.parse_args(argv)
    ns._fn(ns)
    return


if __name__ == "__main__":
    main()
