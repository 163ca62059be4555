"""
Unit tests for config loading, pattern persistence, input schemas and the CLI entry point.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

import main
from core.exceptions import CollaboratorError, ConfigError, PatternPersistenceError
from core.models import MatchingPattern
from core.schema import MatchingInputSchema
from utils.config import load_config
from utils.pattern_persistence import JsonFilePatternPersistence, NullPatternPersistence

ENV_VARS = (
    "OUTPUT_DIR",
    "PATTERNS_PATH",
    "LOG_LEVEL",
    "LLM_PROVIDER",
    "LLM_BASE_URL",
    "LLM_API_KEY",
    "LLM_MODEL",
    "MATCH_BATCH_SIZE",
    "MATCH_MAX_CONCURRENCY",
    "MATCH_ENABLE_CACHE",
    "MATCH_ENABLE_PATTERN_LEARNING",
    "MATCH_PRIORITIZE_HIGH_VALUE",
    "MATCH_CONFIDENCE_THRESHOLD",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def test_defaults_when_no_file(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "missing.yaml", use_dotenv=False)
    assert cfg.llm.provider == "ollama"
    assert cfg.matching.batch_size == 50
    assert cfg.matching.max_concurrency == 3
    assert cfg.matching.confidence_threshold == 0.5
    assert cfg.patterns_path == ""


def test_yaml_then_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "output_dir: out\n"
        "llm:\n"
        "  provider: OpenAI\n"
        "  model: gpt-4o-mini\n"
        "  cost_per_1k_input: 0.15\n"
        "matching:\n"
        "  batch_size: 20\n"
        "  enable_cache: false\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("MATCH_MAX_CONCURRENCY", "5")
    monkeypatch.setenv("LLM_MODEL", "gpt-4o")
    monkeypatch.setenv("MATCH_ENABLE_PATTERN_LEARNING", "no")

    cfg = load_config(path, use_dotenv=False)

    assert cfg.output_dir == "out"
    assert cfg.llm.provider == "openai"
    assert cfg.llm.model == "gpt-4o"
    assert cfg.llm.cost_per_1k_input == 0.15
    assert cfg.matching.batch_size == 20
    assert cfg.matching.max_concurrency == 5
    assert cfg.matching.enable_cache is False
    assert cfg.matching.enable_pattern_learning is False
    assert cfg.matching.prioritize_high_value is True


def test_invalid_values_raise_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MATCH_BATCH_SIZE", "lots")
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml", use_dotenv=False)

    monkeypatch.setenv("MATCH_BATCH_SIZE", "0")
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml", use_dotenv=False)


# ---------------------------------------------------------------------------
# Pattern persistence
# ---------------------------------------------------------------------------


def _pattern() -> MatchingPattern:
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    return MatchingPattern(
        id="ABC Supply:*mm steel rebar:steel rebar *mm",
        invoice_description_pattern="*mm steel rebar",
        estimate_description_pattern="steel rebar *mm",
        supplier_name="ABC Supply",
        trade_name="Structural",
        confidence=0.9,
        usage_count=4,
        success_rate=0.875,
        created_at=when,
        last_used_at=when,
    )


def test_json_persistence_saves_and_loads(tmp_path: Path) -> None:
    store = JsonFilePatternPersistence(tmp_path / "nested" / "patterns.json")
    store.save([_pattern()])

    document = json.loads(store.path.read_text(encoding="utf-8"))
    assert document["version"] == 1
    loaded = store.load()
    assert loaded == [_pattern()]


def test_missing_file_loads_nothing(tmp_path: Path) -> None:
    assert JsonFilePatternPersistence(tmp_path / "none.json").load() == []


def test_invalid_entries_are_skipped(tmp_path: Path) -> None:
    path = tmp_path / "patterns.json"
    good = _pattern().to_dict()
    path.write_text(json.dumps({"version": 1, "patterns": [good, {"id": "broken"}]}), encoding="utf-8")
    loaded = JsonFilePatternPersistence(path).load()
    assert [p.id for p in loaded] == [good["id"]]


@pytest.mark.parametrize("content", ["{not json", '["a list"]', '{"version": 1}'])
def test_unreadable_file_raises(tmp_path: Path, content: str) -> None:
    path = tmp_path / "patterns.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(PatternPersistenceError):
        JsonFilePatternPersistence(path).load()


def test_null_persistence_keeps_nothing() -> None:
    persistence = NullPatternPersistence()
    persistence.save([_pattern()])
    assert persistence.load() == []


# ---------------------------------------------------------------------------
# Input schema & CLI
# ---------------------------------------------------------------------------

INPUT_DOCUMENT = {
    "projectId": "proj-42",
    "invoices": [
        {
            "id": "inv1",
            "invoiceNumber": "INV-001",
            "supplierName": "ABC Supply",
            "lineItems": [
                {"id": "i1", "description": "10mm Steel Rebar", "quantity": 10, "unitPrice": 50, "totalPrice": 500, "category": "material"},
            ],
        }
    ],
    "estimates": [
        {"id": "e1", "description": "Steel Rebar 10mm", "tradeName": "Structural", "materialCostEst": 480},
    ],
}


def test_input_schema_builds_models() -> None:
    invoices, estimates = MatchingInputSchema.model_validate(INPUT_DOCUMENT).to_models()
    item = invoices[0].line_items[0]
    assert item.invoice_id == "inv1"
    assert item.category == "MATERIAL"
    assert item.total_price == 500.0
    assert estimates[0].total_cost == 480.0


def test_cli_writes_results_with_fallback_matching(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    class OfflineProvider:
        def generate(self, prompt, **kwargs):
            raise CollaboratorError("offline")

    monkeypatch.setattr(main, "create_provider_from_config", lambda llm: OfflineProvider())
    input_path = tmp_path / "input.json"
    input_path.write_text(json.dumps(INPUT_DOCUMENT), encoding="utf-8")
    out_dir = tmp_path / "out"

    code = main.main(
        [
            "--input",
            str(input_path),
            "--config",
            str(tmp_path / "missing.yaml"),
            "--output-dir",
            str(out_dir),
            "--no-pattern-learning",
        ]
    )

    assert code == 0
    written = json.loads((out_dir / main.RESULTS_FILE).read_text(encoding="utf-8"))
    assert written["success"] is True
    assert written["matches"][0]["estimate_line_item_id"] == "e1"


def test_cli_reports_config_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MATCH_MAX_CONCURRENCY", "0")
    input_path = tmp_path / "input.json"
    input_path.write_text(json.dumps(INPUT_DOCUMENT), encoding="utf-8")
    assert main.main(["--input", str(input_path), "--config", str(tmp_path / "missing.yaml")]) == 2
