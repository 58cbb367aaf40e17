# tests/test_response_recovery.py
import pytest

from policydesk.prompts.system_prompts import (
    DEGRADED_KEY_POINTS,
    DEGRADED_SUMMARY,
    DOCUMENT_NOT_FOUND_ANSWER,
    MISSING_SUMMARY,
    POLICY_NOT_FOUND_ANSWER,
)
from policydesk.workflow.response_recovery import (
    find_json_object,
    recover_analysis,
    recover_answer,
)


class TestFindJsonObject:

    def test_object_surrounded_by_prose(self):
        text = 'Sure! Here you go: {"answer":"X","confidence":0.8} Hope that helps!'
        assert find_json_object(text) == {"answer": "X", "confidence": 0.8}

    def test_nested_object(self):
        text = 'Result: {"a": {"b": 1}, "c": [1, 2]} done'
        assert find_json_object(text) == {"a": {"b": 1}, "c": [1, 2]}

    def test_braces_inside_strings(self):
        text = 'x {"answer": "use } and { carefully", "confidence": 0.7} y'
        assert find_json_object(text) == {"answer": "use } and { carefully", "confidence": 0.7}

    def test_escaped_quote_inside_string(self):
        text = '{"answer": "he said \\"hi}\\" loudly"}'
        assert find_json_object(text) == {"answer": 'he said "hi}" loudly'}

    def test_first_object_wins(self):
        text = '{"answer": "first"} and then {"answer": "second"}'
        assert find_json_object(text) == {"answer": "first"}

    def test_skips_undecodable_span(self):
        text = 'Template {placeholder} then {"answer": "real"}'
        assert find_json_object(text) == {"answer": "real"}

    def test_unbalanced(self):
        assert find_json_object('{"answer": "cut off') is None

    @pytest.mark.parametrize("text", ["", "no json here", "}{", "[1, 2, 3]", None])
    def test_nothing_found(self, text):
        assert find_json_object(text) is None


class TestRecoverAnswer:

    def test_prose_wrapped_json(self):
        result = recover_answer('Sure! Here you go: {"answer":"X","confidence":0.8} Hope that helps!')

        assert result.answer == "X"
        assert result.confidence == 0.8
        assert result.error is None

    def test_missing_confidence_defaults(self):
        assert recover_answer('{"answer": "A"}').confidence == 0.5

    def test_missing_answer_uses_sentinel(self):
        assert recover_answer('{"confidence": 0.3}').answer == POLICY_NOT_FOUND_ANSWER

    def test_custom_sentinel(self):
        result = recover_answer("{}", not_found=DOCUMENT_NOT_FOUND_ANSWER)
        assert result.answer == DOCUMENT_NOT_FOUND_ANSWER

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ('{"confidence": 7}', 1.0),
            ('{"confidence": -2}', 0.0),
            ('{"confidence": "0.25"}', 0.25),
            ('{"confidence": "high"}', 0.5),
            ('{"confidence": null}', 0.5),
            ('{"confidence": true}', 0.5),
            ('{"confidence": NaN}', 0.5),
        ],
    )
    def test_confidence_normalized(self, raw, expected):
        assert recover_answer(raw).confidence == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ('{"policyId": 5}', 5),
            ('{"policyId": "5"}', 5),
            ('{"policyId": 5.0}', 5),
            ('{"policyId": "five"}', None),
            ('{"policyId": "²"}', None),
            ('{"policyId": null}', None),
        ],
    )
    def test_policy_id(self, raw, expected):
        assert recover_answer(raw).policy_id == expected

    def test_no_json_degrades_to_raw_text(self):
        result = recover_answer("The vacation policy allows 20 days.")

        assert result.answer == "The vacation policy allows 20 days."
        assert result.confidence == 0.0
        assert result.error is None

    def test_empty_output_degrades_to_sentinel(self):
        result = recover_answer("   ")

        assert result.answer == POLICY_NOT_FOUND_ANSWER
        assert result.confidence == 0.0

    @pytest.mark.parametrize(
        "raw",
        [
            "{",
            "}",
            '{"answer": ',
            "\x00\x01",
            "{" * 500,
            '{"answer": ["list"], "confidence": {}}',
            '{"answer": "X", "confidence": 0.8, "policyId": "²"}',
            '{"answer": "X", "confidence": 1' + "0" * 400 + '}',
        ],
    )
    def test_never_raises(self, raw):
        result = recover_answer(raw)
        assert 0.0 <= result.confidence <= 1.0


class TestRecoverAnalysis:

    def test_summary_and_key_points(self):
        raw = 'Here: {"summary": "Short.", "keyPoints": ["One", " Two ", "", null, 3]}'

        analysis = recover_analysis(raw)

        assert analysis.summary == "Short."
        assert analysis.key_points == ["One", "Two", "3"]
        assert analysis.degraded is False

    def test_key_points_not_a_list(self):
        assert recover_analysis('{"summary": "S", "keyPoints": "one, two"}').key_points == []

    def test_missing_summary(self):
        assert recover_analysis('{"keyPoints": []}').summary == MISSING_SUMMARY

    def test_no_json_gives_degraded_pair(self):
        analysis = recover_analysis("I cannot summarize this.")

        assert analysis.summary == DEGRADED_SUMMARY
        assert analysis.key_points == DEGRADED_KEY_POINTS
        assert analysis.degraded is True
