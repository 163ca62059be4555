"""
Bulk invoice-to-estimate matching: entry point.

Usage:
  python main.py --input matching_input.json [--config config.yaml] [--output-dir DIR]
                 [--batch-size N] [--max-concurrency N] [--no-cache] [--no-pattern-learning]
                 [--no-prioritize] [--patterns PATH]

- Input JSON: {"projectId": "...", "invoices": [...], "estimates": [...]} (camelCase or snake_case keys).
- LLM endpoint from config.yaml / env (LLM_PROVIDER, LLM_BASE_URL, LLM_API_KEY, LLM_MODEL).
- Learned patterns persist to --patterns / PATTERNS_PATH when given; otherwise only for this process.
- Output: <output-dir>/match_results.json plus a summary on stdout.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from core.exceptions import ConfigError
from core.interfaces import IPatternPersistence
from core.models import BulkMatchingResult
from core.schema import MatchingInputSchema
from pipeline.matching_pipeline import BulkMatchingPipeline
from providers.factory import create_provider_from_config
from services.llm_matching_service import LLMMatchingService
from utils.config import AppConfig, load_config
from utils.logger import setup_logging
from utils.pattern_persistence import JsonFilePatternPersistence, NullPatternPersistence

logger = logging.getLogger(__name__)

RESULTS_FILE = "match_results.json"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Match invoice line items to project estimate line items.")
    p.add_argument("--input", required=True, help="JSON file with projectId, invoices and estimates")
    p.add_argument("--config", default=None, help="YAML config (default: ./config.yaml if present)")
    p.add_argument("--output-dir", default=None, help="Directory for match_results.json")
    p.add_argument("--patterns", default=None, help="JSON file for learned patterns")
    p.add_argument("--batch-size", type=int, default=None)
    p.add_argument("--max-concurrency", type=int, default=None)
    p.add_argument("--no-cache", action="store_true", help="Skip the result cache stage")
    p.add_argument("--no-pattern-learning", action="store_true", help="Do not learn patterns from this run")
    p.add_argument("--no-prioritize", action="store_true", help="Keep input order instead of high-value first")
    p.add_argument("--log-level", default=None)
    return p.parse_args(argv)


def apply_cli_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    matching: dict[str, Any] = {
        "batch_size": args.batch_size,
        "max_concurrency": args.max_concurrency,
    }
    if args.no_cache:
        matching["enable_cache"] = False
    if args.no_pattern_learning:
        matching["enable_pattern_learning"] = False
    if args.no_prioritize:
        matching["prioritize_high_value"] = False
    return config.with_overrides(
        output_dir=args.output_dir,
        patterns_path=args.patterns,
        log_level=args.log_level,
        matching=matching,
    )


def load_input(path: Path) -> MatchingInputSchema:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return MatchingInputSchema.model_validate(data)


def build_pipeline(config: AppConfig) -> BulkMatchingPipeline:
    llm = config.llm
    collaborator = LLMMatchingService(
        create_provider_from_config(llm),
        model=llm.model,
        max_retries=llm.max_retries,
        retry_delay_sec=llm.retry_delay_sec,
        temperature=llm.temperature,
        max_tokens=llm.max_tokens,
        cost_per_1k_input=llm.cost_per_1k_input,
        cost_per_1k_output=llm.cost_per_1k_output,
    )
    persistence: IPatternPersistence = (
        JsonFilePatternPersistence(config.patterns_path) if config.patterns_path else NullPatternPersistence()
    )
    return BulkMatchingPipeline(collaborator, persistence=persistence, options=config.matching)


def print_summary(result: BulkMatchingResult) -> None:
    m = result.metrics
    print(f"Run {result.run_id}: success={result.success} quality_score={result.quality_score}")
    print(
        f"  items={m.total_items} high={m.high_confidence_matches} medium={m.medium_confidence_matches} "
        f"low={m.low_confidence_matches} none={m.no_matches}"
    )
    print(
        f"  pattern_matches={m.pattern_matches} cache_hits={m.cache_hits} llm_calls={m.llm_calls} "
        f"cost={m.cost_estimate:.4f} time_ms={m.processing_time_ms:.0f}"
    )
    for rec in result.recommendations:
        print(f"  - {rec}")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        config = apply_cli_overrides(load_config(args.config), args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    setup_logging(config.log_level)

    input_path = Path(args.input)
    try:
        payload = load_input(input_path)
    except (OSError, json.JSONDecodeError, PydanticValidationError) as e:
        print(f"Failed to load input {input_path}: {e}", file=sys.stderr)
        return 1
    invoices, estimates = payload.to_models()

    pipeline = build_pipeline(config)
    result = pipeline.bulk_match_invoices(
        invoices, estimates, payload.project_id or input_path.stem, config.matching
    )

    out_dir = Path(config.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / RESULTS_FILE
    out_path.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
    logger.info("Wrote %s", out_path)
    print_summary(result)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
