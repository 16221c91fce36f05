"""Tests for strict and lenient JSON response validation."""

from __future__ import annotations

import json

import pytest

from sherpa.errors import ResponseValidationError
from sherpa.models import ExamplesPresent, ProblemUnderstanding, SolutionKind
from sherpa.validation import (
    parse_anticipated_follow_ups,
    parse_follow_up,
    parse_four_quadrant,
    parse_generated_story,
    parse_initial_analysis,
    parse_narrative,
    parse_principle_list,
    parse_problem_info,
    parse_refined_understanding,
    parse_story_selection,
    strip_fences,
)

NARRATIVE = {
    "problemAnalysis": "Find two indices that sum to target.",
    "bruteForce": {
        "explanation": "Check every pair.",
        "codeOrPseudocode": "for i, for j",
        "timeComplexity": "O(n^2)",
        "spaceComplexity": "O(1)",
        "inefficiencyReason": "Repeats work.",
    },
    "optimizationStrategy": {
        "explanation": "Remember seen values.",
        "pseudocode": "map = {}",
        "timeComplexity": "O(n)",
        "spaceComplexity": "O(n)",
    },
    "optimalImplementation": {"code": "def f(): ...", "dryRun": "i=0: map={2:0}"},
}

UNDERSTANDING = {
    "understandingStatement": "Return indices of two numbers adding to target.",
    "generatedExamples": [
        {"input": "[2,7], 9", "output": "[0,1]", "explanation": "2+7"},
        {"input": "[3,3], 6", "output": "[0,1]"},
    ],
    "clarifyingQuestions": ["Can the same element be used twice?"],
}


class TestStripFences:
    def test_json_fence(self):
        assert strip_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence_and_whitespace(self):
        assert strip_fences('  ```\n[1]\n```  ') == "[1]"

    def test_no_fence(self):
        assert strip_fences(' {"a": 1} ') == '{"a": 1}'


class TestProblemInfo:
    def test_parses_with_optional_fields(self):
        info = parse_problem_info('```json\n{"problem_statement": "Two sum", "constraints": null}\n```')
        assert info.problem_statement == "Two sum"
        assert info.constraints is None
        assert info.to_dict() == {"problem_statement": "Two sum"}

    def test_not_json_at_all(self):
        with pytest.raises(ResponseValidationError) as exc:
            parse_problem_info("not json at all")
        assert exc.value.schema == "ProblemInfo"
        assert exc.value.excerpt == "not json at all"

    def test_truncated_json(self):
        with pytest.raises(ResponseValidationError, match="ProblemInfo"):
            parse_problem_info('{"problem_statement": "x",}')


class TestInitialAnalysis:
    def test_examples_present_short_circuit(self):
        assert isinstance(parse_initial_analysis('{"examplesPresent": true}'), ExamplesPresent)

    def test_understanding(self):
        result = parse_initial_analysis(json.dumps(UNDERSTANDING))
        assert isinstance(result, ProblemUnderstanding)
        assert len(result.generated_examples) == 2
        assert result.generated_examples[1].explanation is None
        assert result.to_dict() == UNDERSTANDING

    def test_missing_key_names_the_structure(self):
        data = dict(UNDERSTANDING)
        del data["clarifyingQuestions"]
        with pytest.raises(ResponseValidationError) as exc:
            parse_initial_analysis(json.dumps(data))
        assert exc.value.schema == "ProblemUnderstandingData"
        assert "clarifyingQuestions" in exc.value.reason

    def test_examples_present_false_still_needs_fields(self):
        with pytest.raises(ResponseValidationError):
            parse_initial_analysis('{"examplesPresent": false}')

    def test_refined_ignores_examples_present(self):
        with pytest.raises(ResponseValidationError):
            parse_refined_understanding('{"examplesPresent": true}')

    def test_bad_example_entry(self):
        data = dict(UNDERSTANDING, generatedExamples=[{"input": "x"}])
        with pytest.raises(ResponseValidationError, match="generatedExamples"):
            parse_refined_understanding(json.dumps(data))


class TestNarrative:
    def test_round_trip(self):
        solution = parse_narrative(json.dumps(NARRATIVE))
        assert solution.kind is SolutionKind.NARRATIVE
        assert solution.to_dict() == NARRATIVE

    def test_missing_implementation(self):
        data = {k: v for k, v in NARRATIVE.items() if k != "optimalImplementation"}
        with pytest.raises(ResponseValidationError) as exc:
            parse_narrative(json.dumps(data))
        assert exc.value.schema == "NarrativeSolutionData"

    def test_empty_code_rejected(self):
        data = dict(NARRATIVE, optimalImplementation={"code": " ", "dryRun": "x"})
        with pytest.raises(ResponseValidationError, match="'code' is empty"):
            parse_narrative(json.dumps(data))

    def test_array_is_not_an_object(self):
        with pytest.raises(ResponseValidationError, match="not a valid JSON object"):
            parse_narrative("[1, 2]")


class TestFollowUp:
    def test_parses(self):
        entry = parse_follow_up('{"optimalImplementation": {"code": "x = 1", "dryRun": "x is 1"}}')
        assert entry.code == "x = 1"
        assert entry.dry_run == "x is 1"

    def test_missing_dry_run(self):
        with pytest.raises(ResponseValidationError, match="FollowUpResponse"):
            parse_follow_up('{"optimalImplementation": {"code": "x = 1"}}')


class TestFourQuadrant:
    def test_missing_sections_get_placeholders(self):
        solution = parse_four_quadrant('{"problemUnderstanding": "Sum pairs.", "bruteForceApproach": 7}')
        assert solution.problem_understanding == "Sum pairs."
        assert solution.brute_force_approach == "Missing: Brute Force Approach."
        assert solution.optimal_solution_pseudocode == "Missing: Optimal Solution Pseudocode."
        assert solution.optimal_solution_implementation.code == "Missing: Code."
        assert solution.kind is SolutionKind.FOUR_QUADRANT

    def test_complete(self):
        data = {
            "problemUnderstanding": "a",
            "bruteForceApproach": "b",
            "optimalSolutionPseudocode": "c",
            "optimalSolutionImplementation": {
                "code": "d",
                "timeComplexity": "O(n)",
                "spaceComplexity": "O(1)",
                "thinkingProcess": "e",
            },
        }
        assert parse_four_quadrant(json.dumps(data)).to_dict() == data

    def test_non_object_still_raises(self):
        with pytest.raises(ResponseValidationError, match="FourQuadrantData"):
            parse_four_quadrant("I could not do it")


class TestBehavioral:
    def test_principle_list(self):
        assert parse_principle_list('["Ownership", " ", "Dive Deep"]') == ("Ownership", "Dive Deep")

    def test_principle_list_rejects_objects(self):
        with pytest.raises(ResponseValidationError):
            parse_principle_list('[{"name": "Ownership"}]')

    def test_story_selection_null(self):
        selection = parse_story_selection('{"selectedStoryId": null, "reasoning": "none fit"}')
        assert selection.story_id is None
        assert selection.reasoning == "none fit"

    def test_story_selection_numeric_id(self):
        assert parse_story_selection('{"selectedStoryId": 3, "reasoning": "r"}').story_id == "3"

    def test_story_selection_needs_reasoning(self):
        with pytest.raises(ResponseValidationError, match="StorySelection"):
            parse_story_selection('{"selectedStoryId": "s1"}')

    def test_anticipated(self):
        items = parse_anticipated_follow_ups('[{"question": "Why?", "answer": "Because."}]')
        assert items[0].question == "Why?"

    def test_generated_story(self):
        assert parse_generated_story('{"generatedStoryText": "Once..."}') == "Once..."
