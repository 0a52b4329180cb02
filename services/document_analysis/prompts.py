"""
Prompt Templates
================

Prompts for the three answering strategies. Every prompt pins the model
to the supplied text and to the fixed "not specified" sentinel.

Version: 0.1.0
"""

from services.document_analysis.patterns import SENTINEL_ANSWER
from shared.models import AnswerRecord, Question


STATUTE_ANALYST = (
    "You are analyzing local statutes. Based ONLY on the provided statute text, answer "
    f'the user\'s question. If the information is not in the statute, respond with "{SENTINEL_ANSWER}" '
    "Be precise and cite section numbers when available.\n"
    "IMPORTANT: Focus on providing unique information for this specific question. Do not "
    "repeat details that would be better covered in answers to other questions."
)

CONVERSATION_ANALYST = f"""You are analyzing local statutes. You will answer a series of questions about the statute in conversation format.

CRITICAL INSTRUCTIONS:
- Answer based ONLY on what is explicitly stated in the statute text provided
- If information is not found in the statute, respond with EXACTLY "{SENTINEL_ANSWER}" and use low confidence (0-20)
- Do not infer, assume, or elaborate beyond what is written
- ALWAYS include specific section references (like § 112-4A) in your answers when citing information
- Use plain language residents can understand
- Include specific details like fees, timeframes and requirements ONLY if they are explicitly stated

SCORING GUIDANCE:
- Higher scores reflect more specific and more protective requirements
- Lower scores for vague, permissive, or missing regulations"""

ANSWER_FORMAT = """Please provide your answer in this JSON format:
{
  "answer": "Your detailed answer in plain language, including section references when citing the statute",
  "sourceReference": "Specific statute section or form section if identifiable",
  "confidence": 85
}"""

FORM_NOTE = (
    "NOTE: This question asks about information that may be found in the official form "
    "document provided above. Check both the statute AND the form document."
)


def with_guidance(system_prompt: str, scoring_guidance: str | None) -> str:
    if not scoring_guidance:
        return system_prompt
    return f"{system_prompt}\n\nSCORING GUIDANCE: {scoring_guidance}"


def direct_user_prompt(document: str, question: Question) -> str:
    return (
        f"STATUTE TEXT:\n{document}\n\n"
        f"QUESTION: {question.text}\n\n"
        "Please provide a clear, concise answer based solely on the statute text above. "
        f'If the information is not explicitly stated in the statute, respond with "{SENTINEL_ANSWER}"'
    )


def conversation_system_prompt(questions: list[Question]) -> str:
    specific = [
        f"Question {i} specific scoring: {q.scoring_guidance}"
        for i, q in enumerate(questions, start=1)
        if q.scoring_guidance
    ]
    if not specific:
        return CONVERSATION_ANALYST
    return CONVERSATION_ANALYST + "\n\n" + "\n".join(specific)


def conversation_opening(
    jurisdiction_id: str,
    domain_id: str,
    document: str,
    question_count: int,
    guidance: str | None = None,
    form: str | None = None,
) -> str:
    parts = [f"Here is the complete statute for {jurisdiction_id} ({domain_id}):\n\n{document}"]
    if guidance:
        parts.append(f"=== ADDITIONAL GUIDANCE DOCUMENT ===\n{guidance}")
    if form:
        parts.append(f"=== OFFICIAL FORM DOCUMENT ===\n{form}")

    scope = "this statute and the additional documents provided" if guidance or form else "this statute"
    parts.append(
        f"I will now ask you {question_count} questions about {scope}. Please analyze it "
        "carefully and answer each question based solely on the content above."
    )
    return "\n\n".join(parts)


def conversation_question(index: int, question: Question, include_form_note: bool) -> str:
    note = f"\n\n{FORM_NOTE}" if include_form_note else ""
    return f"Question {index}: {question.text}{note}\n\n{ANSWER_FORMAT}"


def retrieval_user_prefix(question: Question) -> str:
    return f"Question: {question.text}\n\nRelevant statute text:\n"


def kept_answers_hint(kept: list[AnswerRecord]) -> str:
    """
    Summaries of answers already on record, so the model avoids repeating them.

    Advisory only: nothing enforces uniqueness across answers.
    """
    if not kept:
        return ""
    lines = [f"- Q{a.question_id}: {a.answer_text[:100]}..." for a in kept]
    return (
        "\n\nEXISTING ANSWERS (do not repeat this information; focus on what is unique "
        "to this question):\n" + "\n".join(lines)
    )
