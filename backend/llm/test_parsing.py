"""Tests for JSON extraction and payload validation."""

from llm.parsing import Fallback, Parsed, extract_json_object, find_json_span, parse_payload
from llm.schemas import InsightPayload, PredictionItem, RecommendationItem, validate_items


def test_finds_object_inside_prose() -> None:
    text = 'Sure! Here is the analysis:\n{"efficiency_score": 0.8, "insights": ["a {nested} brace"]}\nHope it helps {'
    assert find_json_span(text) == '{"efficiency_score": 0.8, "insights": ["a {nested} brace"]}'


def test_escaped_quotes_do_not_end_strings() -> None:
    text = '{"note": "say \\"}\\" twice", "n": 1} trailing'
    assert extract_json_object(text) == Parsed({"note": 'say "}" twice', "n": 1})


def test_missing_or_broken_json_is_a_fallback() -> None:
    assert isinstance(extract_json_object("no json here"), Fallback)
    assert isinstance(extract_json_object('{"unterminated": '), Fallback)
    assert isinstance(extract_json_object("{'single': 'quotes'}"), Fallback)


def test_parse_payload_validates_against_model() -> None:
    match parse_payload('{"efficiency_score": 85, "anomalies": []}', InsightPayload):
        case Parsed(value=payload):
            assert payload.efficiency_score == 0.85
        case Fallback(reason=reason):
            raise AssertionError(reason)

    result = parse_payload('{"efficiency_score": 250}', InsightPayload)
    assert isinstance(result, Fallback)
    assert "validation" in result.reason


def test_prediction_items_accept_camel_case() -> None:
    items = validate_items(
        [
            {"hour": 3, "predictedUsage": 1200, "predictedCost": 0.2, "confidence": 0.9},
            {"hour": 4, "predictedUsage": "lots", "confidence": 0.9},
            {"hour": 5, "predicted_usage": 900, "confidence": 0.8},
        ],
        PredictionItem,
    )
    assert [i.predicted_usage for i in items] == [1200, 900]


def test_recommendation_items_are_normalised() -> None:
    items = validate_items(
        [
            {
                "title": "Pre-cool",
                "potentialSavings": 120,
                "priority": "HIGH",
                "estimatedTime": "2 minutes",
                "devices": ["hvac_001"],
                "action": "set_temperature",
                "value": 68,
            },
            {"title": "", "action": "monitor"},
            {"title": "Bad priority", "priority": "urgent"},
        ],
        RecommendationItem,
    )
    assert len(items) == 1
    rec = items[0]
    assert rec.potential_savings == 50.0
    assert rec.priority == "high"
    assert rec.value == "68"
    assert rec.estimated_time == "2 minutes"
