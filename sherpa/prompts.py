"""Centralized prompt templates for all agents."""

from __future__ import annotations

import json
from typing import Sequence

from sherpa.models import (
    BehavioralStory,
    LeadershipPrinciple,
    ProblemExample,
    ProblemInfo,
    ProblemUnderstanding,
)


def _problem_json(problem: ProblemInfo | None) -> str:
    return json.dumps(problem.to_dict() if problem else {}, indent=2)


def _examples_json(examples: Sequence[ProblemExample]) -> str:
    return json.dumps([e.to_dict() for e in examples], indent=2)


def _or(value: str | None, default: str) -> str:
    return value if value else default


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

EXTRACTION_SYSTEM = """\
You are a coding challenge interpreter. Extract problem details from \
screenshots in JSON with fields: problem_statement, constraints, \
example_input, example_output."""


def extraction_user_prompt(language: str) -> str:
    return (
        "Extract the coding problem shown in these screenshots.\n"
        "Return ONLY a JSON object with the keys problem_statement, constraints, "
        "example_input and example_output. Use null for anything that is not visible.\n"
        f"The candidate will answer in {language}."
    )


# ---------------------------------------------------------------------------
# Understanding
# ---------------------------------------------------------------------------

UNDERSTANDING_SYSTEM = """\
You are an AI assistant analyzing coding problems. First, determine if the \
provided problem info already contains sufficient examples. If yes, respond \
with { "examplesPresent": true }. If not, generate your understanding of the \
problem, create 1-2 illustrative examples (input/output/explanation), and ask \
clarifying questions only if essential. Respond strictly with the specified \
JSON format ({ "examplesPresent": true } OR ProblemUnderstandingData)."""


def understanding_user_prompt(problem: ProblemInfo) -> str:
    return f"""\
Task: Analyze the provided coding problem information. First, determine if \
sufficient illustrative examples (input/output pairs) are already present.

Problem Information:
```json
{_problem_json(problem)}
```

1. Check for existing examples: look at example_input and example_output.
   If clear input/output examples ARE PRESENT, respond only with:
   {{ "examplesPresent": true }}
   Otherwise continue with step 2.

2. Create a ProblemUnderstandingData JSON object:
   - understandingStatement: (string) the core objective restated in your own words.
   - generatedExamples: (array) 1-2 distinct examples, each with
     input (string), output (string) and an optional explanation (string).
   - clarifyingQuestions: (array of strings) 1-2 questions ONLY if a critical \
ambiguity remains after generating examples. Do not ask about stated constraints.

Example:
{{
  "understandingStatement": "Find the minimum path sum from the top to the bottom of a triangle, moving to adjacent numbers on the row below.",
  "generatedExamples": [
    {{"input": "triangle = [[2],[3,4],[6,5,7],[4,1,8,3]]", "output": "11", "explanation": "2 -> 3 -> 5 -> 1 = 11"}},
    {{"input": "triangle = [[-10]]", "output": "-10"}}
  ],
  "clarifyingQuestions": []
}}

Respond ONLY with a single valid JSON object. No text outside the JSON and no code fences."""


REFINE_SYSTEM = """\
You are an AI assistant refining your understanding of a coding problem based \
on user feedback. Update your understanding statement and examples according \
to the clarification provided. Respond strictly with the \
ProblemUnderstandingData JSON structure."""


def refine_user_prompt(
    problem: ProblemInfo,
    previous: ProblemUnderstanding,
    clarification: str,
) -> str:
    questions = "\n".join(previous.clarifying_questions) or "None"
    return f"""\
Task: Refine the understanding and examples for the coding problem based on \
the user's clarification.

Original Problem Information:
```json
{_problem_json(problem)}
```

Previous Understanding:
{previous.understanding_statement}

Previously Generated Examples:
{_examples_json(previous.generated_examples)}

Previously Asked Questions:
{questions}

User Clarification:
{clarification}

Produce an updated ProblemUnderstandingData JSON object:
- understandingStatement: a revised statement reflecting the clarification.
- generatedExamples: 1-2 revised or new examples consistent with the clarification.
- clarifyingQuestions: only if the clarification introduced new ambiguity; usually [].

Respond ONLY with a single valid JSON object. No text outside the JSON and no code fences."""


# ---------------------------------------------------------------------------
# Narrative solution
# ---------------------------------------------------------------------------

NARRATIVE_SYSTEM = """\
You are an expert coding interview coach. The user has confirmed their \
understanding of the problem. Generate the brute force analysis, the \
optimization strategy, and the optimal implementation (code + dry run), \
formatted strictly as a JSON object with keys 'problemAnalysis', \
'bruteForce', 'optimizationStrategy' and 'optimalImplementation'. Use a \
conversational tone with smooth transitions."""


def narrative_user_prompt(
    language: str,
    problem: ProblemInfo,
    understanding: str,
    examples: Sequence[ProblemExample],
) -> str:
    return f"""\
Task: Based on the confirmed understanding and examples below, write the \
problem analysis, the brute force approach, the optimization strategy and the \
optimal implementation with a dry run.

Confirmed Understanding:
{understanding}

Confirmed Examples:
{_examples_json(examples)}

Original Problem Information (for reference):
```json
{_problem_json(problem)}
```

Return one JSON object with these four top-level keys:
- problemAnalysis: (string) the confirmed understanding, restated exactly.
- bruteForce: (object)
  - explanation: (markdown) the straightforward approach.
  - codeOrPseudocode: (string) brute force code or pseudocode in {language}.
  - timeComplexity: (string) Big O.
  - spaceComplexity: (string) Big O.
  - inefficiencyReason: (markdown) why this approach is inefficient.
- optimizationStrategy: (object)
  - explanation: (markdown) the transition from brute force and the technique used.
  - pseudocode: (string) pseudocode of the optimal solution.
  - timeComplexity: (string) Big O.
  - spaceComplexity: (string) Big O.
- optimalImplementation: (object)
  - code: (string) complete, runnable, heavily commented {language} code.
  - dryRun: (markdown) a step-by-step dry run on one of the confirmed examples.

The whole output must be a single valid JSON object starting with {{ and ending with }}.

LANGUAGE: {language}"""


# ---------------------------------------------------------------------------
# Two-stage solution (markdown)
# ---------------------------------------------------------------------------

BRUTE_FORCE_SYSTEM = """\
You are an expert coding interview assistant. Your task is to create a \
correct but straightforward brute force solution for a coding problem."""


def brute_force_user_prompt(language: str, problem: ProblemInfo) -> str:
    return f"""\
Create a straightforward brute force solution for this coding problem.

PROBLEM STATEMENT:
{problem.problem_statement}

CONSTRAINTS:
{_or(problem.constraints, "No specific constraints provided.")}

EXAMPLE INPUT:
{_or(problem.example_input, "No example input provided.")}

EXAMPLE OUTPUT:
{_or(problem.example_output, "No example output provided.")}

LANGUAGE: {language}

Provide:
1. A simple, non-optimized but CORRECT brute force solution in {language}, in a code block.
2. Dry Run: a step-by-step trace on the example input.
3. Time complexity: O(...) with an explanation.
4. Space complexity: O(...) with an explanation.

Do not optimize yet. Use exactly these headers: "Brute Force Solution", \
"Dry Run", "Time complexity", "Space complexity"."""


OPTIMIZE_SYSTEM = """\
You are an expert coding interview assistant. Your task is to analyze a brute \
force solution and create an optimized version with clear explanations."""


def optimize_user_prompt(
    language: str,
    problem: ProblemInfo,
    brute_force_code: str,
    brute_force_time: str,
    brute_force_space: str,
) -> str:
    return f"""\
Optimize the brute force solution for this problem.

PROBLEM STATEMENT:
{problem.problem_statement}

BRUTE FORCE SOLUTION:
```{language}
{brute_force_code}
```

BRUTE FORCE TIME COMPLEXITY: {brute_force_time}
BRUTE FORCE SPACE COMPLEXITY: {brute_force_space}

Write these sections:
1. Optimization Analysis: bullet points on the inefficiencies of the brute force \
solution and how you remove them.
2. Optimized Code: a complete optimized solution in {language}, in a code block.
3. Dry Run: a step-by-step trace of the optimized code on the example input.
4. Time Complexity and Space Complexity of the optimized solution, each with an explanation.

Use exactly these headers: "Optimization Analysis", "Optimized Code", \
"Dry Run", "Time Complexity", "Space Complexity"."""


# ---------------------------------------------------------------------------
# Four-quadrant solution
# ---------------------------------------------------------------------------

FOUR_QUADRANT_SYSTEM = """\
You are an expert coding interview coach. Explain the problem in four \
sections and respond strictly with a JSON object with keys \
'problemUnderstanding', 'bruteForceApproach', 'optimalSolutionPseudocode' and \
'optimalSolutionImplementation'."""


def four_quadrant_user_prompt(
    language: str,
    problem: ProblemInfo,
    understanding: str,
    examples: Sequence[ProblemExample],
) -> str:
    return f"""\
Problem Information:
```json
{_problem_json(problem)}
```

Confirmed Understanding:
{understanding}

Confirmed Examples:
{_examples_json(examples)}

Return one JSON object with these keys:
- problemUnderstanding: (markdown) goal, inputs, outputs and constraints.
- bruteForceApproach: (markdown) the naive idea, its complexity and why it is slow.
- optimalSolutionPseudocode: (markdown) pseudocode of the optimal approach.
- optimalSolutionImplementation: (object)
  - code: (string) complete, commented {language} code.
  - timeComplexity: (string) Big O with a one-line reason.
  - spaceComplexity: (string) Big O with a one-line reason.
  - thinkingProcess: (markdown) how you would talk through the solution in an interview.

The whole output must be a single valid JSON object.

LANGUAGE: {language}"""


# ---------------------------------------------------------------------------
# Fallback (one-shot markdown)
# ---------------------------------------------------------------------------

STANDARD_SYSTEM = """\
You are an expert coding interview assistant. Provide clear, optimal \
solutions with detailed explanations."""


def standard_user_prompt(language: str, problem: ProblemInfo) -> str:
    return f"""\
Generate a detailed solution for the following coding problem:

PROBLEM STATEMENT:
{_or(problem.problem_statement, "Not specified")}

CONSTRAINTS:
{_or(problem.constraints, "No specific constraints provided.")}

EXAMPLE INPUT:
{_or(problem.example_input, "No example input provided.")}

EXAMPLE OUTPUT:
{_or(problem.example_output, "No example output provided.")}

LANGUAGE: {language}

Format the response as:
1. Code: a clean, optimized implementation in {language}, in a code block.
2. Thoughts: a bullet list of key insights behind the approach.
3. Dry Run: a step-by-step trace on the example input.
4. Time complexity: O(X) with a detailed explanation (at least 2 sentences).
5. Space complexity: O(X) with a detailed explanation (at least 2 sentences).

Example of a complexity line: "Time complexity: O(n) because we iterate \
through the array only once."
"""


# ---------------------------------------------------------------------------
# Follow-up on the coding solution
# ---------------------------------------------------------------------------

FOLLOW_UP_SYSTEM = """\
You are an expert coding interview assistant processing a follow-up question \
about a previously provided optimal solution. Respond strictly with a JSON \
object containing only 'optimalImplementation' (with 'code' and 'dryRun')."""


def follow_up_user_prompt(
    language: str,
    problem_analysis: str,
    previous_code: str,
    previous_dry_run: str,
    question: str,
) -> str:
    return f"""\
Problem Analysis:
{problem_analysis}

Previous Optimal Code ({language}):
```{language}
{previous_code}
```

Previous Dry Run:
{previous_dry_run}

User Follow-up Question: {question}

Generate an updated optimal implementation and dry run based only on the \
question and the context above.
- If the question asks for a change, return the complete updated code with \
comments on what changed, plus a new dry run.
- If the question asks for an explanation of the existing code, keep the code \
identical and put the explanation in dryRun, prefixed with "Explanation:".
- If the question cannot be answered by changing the code, say so briefly in \
dryRun and keep the code the same.

Required JSON:
{{
  "optimalImplementation": {{
    "code": "complete, commented {language} code",
    "dryRun": "markdown dry run or explanation"
  }}
}}

Output a single valid JSON object and nothing else."""


# ---------------------------------------------------------------------------
# Debug (extra screenshots)
# ---------------------------------------------------------------------------

DEBUG_SYSTEM = """\
You are a coding interview assistant helping debug and improve solutions. \
Analyze the screenshots, which include error messages, incorrect outputs or \
test cases, and give detailed debugging help.

Structure the response with these sections:
### Issues Identified
- each issue as a bullet point
### Specific Improvements and Corrections
- each change as a bullet point
### Optimizations
- performance optimizations, if any
### Explanation of Changes Needed
a short explanation of why the changes are needed
### Key Points
- the most important takeaways

Put the corrected code in a single fenced code block."""


def debug_user_prompt(language: str, problem: ProblemInfo) -> str:
    return (
        f"I'm solving this coding problem: \"{problem.problem_statement}\" in {language}. "
        "I need help with debugging or improving my solution. "
        "Here are screenshots of my code, the errors or test cases."
    )


# ---------------------------------------------------------------------------
# Behavioral
# ---------------------------------------------------------------------------

def _story_context(story: BehavioralStory) -> str:
    return (
        f"Story ID: {story.id}\n"
        f"Title: {story.title}\n"
        f"Relevant LPs: {', '.join(story.principles)}\n"
        f"Situation: {story.situation}\n"
        f"Task: {story.task}\n"
        f"Action: {story.action}\n"
        f"Result: {story.result}"
    )


PRINCIPLE_EXTRACTION_SYSTEM = """\
You are an AI assistant specializing in behavioral interviews built around \
leadership principles. Identify which principles a given interview question \
targets. Respond strictly with a JSON array of principle names."""


def principle_extraction_user_prompt(
    question: str, principles: Sequence[LeadershipPrinciple]
) -> str:
    listing = "\n".join(f"- {p.name}: {p.description}" for p in principles)
    return f"""\
User Behavioral Question: "{question}"

Available Leadership Principles:
{listing}

Identify the principle(s) the question targets. Respond ONLY with a JSON array \
of the exact principle names. Return [] if none is clearly relevant.

Example Output:
["Customer Obsession", "Deliver Results"]"""


STORY_SELECTION_SYSTEM = """\
You are an AI assistant helping users prepare for behavioral interviews. \
Select the single best pre-written STAR story for a question and explain the \
choice. Respond strictly with a JSON object containing 'selectedStoryId' \
(string or null) and 'reasoning' (string)."""


def story_selection_user_prompt(
    question: str,
    principles: Sequence[str],
    stories: Sequence[BehavioralStory],
) -> str:
    listing = "\n\n---\n\n".join(_story_context(s) for s in stories)
    return f"""\
Select the single best story below for the user's question, considering the \
relevant leadership principles.

User Question: {question}

Relevant Principles: {', '.join(principles)}

Available Stories:
{listing}

Respond ONLY with a JSON object:
- selectedStoryId: the ID of the chosen story, or null if no story fits.
- reasoning: why this story answers the question, a short STAR summary, the \
quantitative impact from the Result, and the key lessons learned. Use a \
confident, natural tone with active voice.

Example:
{{"selectedStoryId": "story_003", "reasoning": "This story shows Ownership ..."}}"""


BEHAVIORAL_FOLLOW_UP_SYSTEM = """\
You are an AI assistant helping a user elaborate on their pre-written \
behavioral stories. Answer the follow-up question confidently, drawing ONLY \
on the provided STAR story. Respond strictly with a JSON object containing \
the key 'explanation'."""


def behavioral_follow_up_user_prompt(
    original_question: str, story: BehavioralStory, follow_up: str
) -> str:
    return f"""\
Original Behavioral Question: "{original_question}"

Previously Selected Story:
{_story_context(story)}

User Follow-up Question: "{follow_up}"

Answer the follow-up directly from the story's Situation, Task, Action and \
Result. Mention the measurable impact or the lessons learned where relevant.

Respond ONLY with a JSON object: {{"explanation": "..."}}"""


ANTICIPATE_SYSTEM = """\
You are an AI assistant simulating a behavioral interview. Anticipate 3-5 \
follow-up questions an interviewer might ask about a STAR story and answer \
each one from the story alone. Respond strictly with a JSON array of \
{question, answer} objects."""


def anticipate_user_prompt(original_question: str, story: BehavioralStory) -> str:
    return f"""\
Original Behavioral Question: "{original_question}"

Selected STAR Story:
{_story_context(story)}

Anticipate 3-5 likely follow-up questions that probe technical details of the \
Action, challenges met, results, alternatives considered and lessons learned. \
Answer each concisely from the story details only.

Respond ONLY with a JSON array of objects with keys "question" and "answer"."""


STORY_DETAIL_SYSTEM = """\
You are an expert career coach preparing a candidate for behavioral \
interviews. Write in the first person and answer in markdown."""


def story_detail_user_prompt(story: BehavioralStory) -> str:
    principles = ", ".join(f"`{p}`" for p in story.principles)
    return f"""\
Expand this STAR story outline into a detailed first-person ("I") narrative \
the candidate can use for deep preparation.

```json
{json.dumps(story.to_dict(), indent=2)}
```

Cover:
1. Situation: the broader context, why it mattered, the constraints I faced.
2. Task: my specific responsibility and objective.
3. Action: the steps I took, the decisions and why, tools used, obstacles and \
how I overcame them, and who I worked with.
4. Result: how the outcome was measured, or the qualitative impact, and why it mattered.
5. Lessons Learned: 2-3 takeaways tied to the principles {principles}.

Use the markdown sections ### Situation, ### Task, ### Action, ### Result and \
### Lessons Learned."""


STORY_GENERATION_SYSTEM = """\
You are an AI assistant skilled at crafting compelling STAR-formatted \
behavioral stories. Respond strictly with a JSON object containing the key \
'generatedStoryText'."""


def story_generation_user_prompt(question: str, principles: Sequence[str]) -> str:
    return f"""\
User Behavioral Question: "{question}"

Target Leadership Principles: {', '.join(principles) or 'None identified'}

Write a plausible STAR story (Situation, Task, Action, Result) for a software \
engineer that answers the question and demonstrates the target principles.

Respond ONLY with a JSON object with the single key "generatedStoryText"; its \
value is the full story with **Situation:**, **Task:**, **Action:** and \
**Result:** headings."""
