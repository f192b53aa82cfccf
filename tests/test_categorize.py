import json
from decimal import Decimal

import pytest
from pydantic import ValidationError

from statement_import.categories import load_rule_table, parse_rule_table
from statement_import.categorize import CategorizationEngine, categorize_by_rules
from statement_import.models import (
    UNCATEGORIZED,
    AssignmentSource,
    CategoryAssignment,
    Direction,
    MerchantMapping,
)


@pytest.fixture(scope="module")
def rules():
    return load_rule_table()


@pytest.mark.parametrize(
    ("description", "merchant", "direction", "category", "subcategory"),
    [
        ("IFOOD SAO PAULO", None, Direction.DEBIT, "Alimentação", "Restaurantes"),
        ("NETFLIX.COM", None, Direction.DEBIT, "Assinaturas", "Streaming"),
        ("Compra", "Pão de Açúcar", Direction.DEBIT, "Alimentação", "Supermercado"),
        ("UBER TRIP", "Uber", Direction.DEBIT, "Transporte", "Combustível e Transportes"),
        ("UBER EATS", None, Direction.DEBIT, "Alimentação", "Restaurantes"),
        ("MERCADO LIVRE", None, Direction.DEBIT, "Compras", "Varejo"),
        ("CONTA VIVO FIXO", None, Direction.DEBIT, "Contas", "Telecomunicações"),
        ("DROGASIL 123", None, Direction.DEBIT, "Saúde", "Medicamentos e Consultas"),
        ("MENSALIDADE FACULDADE", None, Direction.DEBIT, "Educação", None),
        ("SALARIO EMPRESA X", None, Direction.CREDIT, "Renda", "Salário"),
        ("PIX RECEBIDO JOAO", None, Direction.CREDIT, "Renda", "Transferências"),
        ("RENDIMENTO POUPANCA", None, Direction.CREDIT, "Renda", "Investimentos"),
    ],
)
def test_rule_table_examples(rules, description, merchant, direction, category, subcategory):
    got = categorize_by_rules(rules, description, merchant, direction)
    assert (got.category, got.subcategory) == (category, subcategory)
    assert got.source is AssignmentSource.RULE_MATCH


def test_short_keywords_only_match_whole_tokens(rules):
    # "oi" and "bar" must not fire inside longer words.
    got = categorize_by_rules(rules, "BOIADEIRO BARBEARIA", None, Direction.DEBIT)
    assert got == CategoryAssignment.fallback()

    got = categorize_by_rules(rules, "RECARGA OI", None, Direction.DEBIT)
    assert got.subcategory == "Telecomunicações"


def test_unmatched_credit_gets_income_fallback(rules):
    got = categorize_by_rules(rules, "ESTORNO COMPRA", None, Direction.CREDIT)
    assert (got.category, got.subcategory) == ("Renda", "Outras")
    assert got.is_classified


def test_unmatched_debit_is_uncategorized(rules):
    got = categorize_by_rules(rules, "ACME COMERCIO LTDA", None, Direction.DEBIT)
    assert got.category == UNCATEGORIZED
    assert got.subcategory is None
    assert got.source is AssignmentSource.FALLBACK
    assert not got.is_classified


def test_income_keywords_do_not_apply_to_debits(rules):
    got = categorize_by_rules(rules, "PAGAMENTO BOLETO", None, Direction.DEBIT)
    assert got.category == UNCATEGORIZED


def test_learned_mapping_overrides_rule_match(rules):
    lookups = []

    def lookup(owner_id, merchant_key):
        lookups.append((owner_id, merchant_key))
        if (owner_id, merchant_key) == ("owner-1", "uber"):
            return MerchantMapping("uber", "Trabalho", "Reembolsável")
        return None

    engine = CategorizationEngine(rules, lookup)
    got = engine.categorize("UBER TRIP", "Uber", Decimal("20.00"), Direction.DEBIT, "owner-1")

    assert (got.category, got.subcategory) == ("Trabalho", "Reembolsável")
    assert got.source is AssignmentSource.LEARNED_MERCHANT_MAPPING

    # Another owner has no mapping and falls through to the rules.
    other = engine.categorize("UBER TRIP", "Uber", Decimal("20.00"), Direction.DEBIT, "owner-2")
    assert other.category == "Transporte"
    assert lookups == [("owner-1", "uber"), ("owner-2", "uber")]


def test_mapping_lookups_are_cached_per_merchant(rules):
    calls = []

    def lookup(owner_id, merchant_key):
        calls.append(merchant_key)
        return None

    engine = CategorizationEngine(rules, lookup)
    for merchant in ("Padaria Real", "PADARIA  REAL", "padaria real!", "Outra Loja"):
        engine.categorize("x", merchant, Decimal("1"), Direction.DEBIT, "o")

    assert calls == ["padaria real", "outra loja"]


def test_blank_merchant_skips_lookup(rules):
    def lookup(owner_id, merchant_key):
        raise AssertionError("lookup should not run")

    engine = CategorizationEngine(rules, lookup)
    got = engine.categorize("NETFLIX.COM", None, Decimal("1"), Direction.DEBIT, "o")
    assert got.subcategory == "Streaming"


def test_fallback_assignment_invariant():
    with pytest.raises(ValueError):
        CategoryAssignment("Lazer", None, AssignmentSource.FALLBACK)


def test_custom_rule_table_file(tmp_path):
    table = {
        "schema_version": 1,
        "income_fallback": {"category": "Income", "subcategory": "Other"},
        "recurring": {"category": "Subscriptions", "subcategory": "Recurring"},
        "rules": [
            {
                "domain": "coffee",
                "direction": "debit",
                "category": "Food",
                "subcategory": "Coffee",
                "keywords": ["starbucks", "café"],
            }
        ],
    }
    path = tmp_path / "rules.json"
    path.write_text(json.dumps(table), encoding="utf-8")

    rules = load_rule_table(path)
    got = categorize_by_rules(rules, "CAFE DO PONTO", None, Direction.DEBIT)
    assert (got.category, got.subcategory) == ("Food", "Coffee")
    assert categorize_by_rules(rules, "x", None, Direction.CREDIT).category == "Income"


@pytest.mark.parametrize(
    "rule",
    [
        {"domain": "d", "direction": "debit", "category": "Uncategorized", "keywords": ["x"]},
        {"domain": "d", "direction": "sideways", "category": "A", "keywords": ["x"]},
        {"domain": "d", "direction": "debit", "category": "A", "keywords": []},
        {"domain": "d", "direction": "debit", "category": "A", "keywords": ["x"], "extra": 1},
    ],
)
def test_invalid_rule_tables_are_rejected(rule):
    table = {
        "schema_version": 1,
        "income_fallback": {"category": "Renda"},
        "recurring": {"category": "Assinaturas"},
        "rules": [rule],
    }
    with pytest.raises(ValidationError):
        parse_rule_table(json.dumps(table))
