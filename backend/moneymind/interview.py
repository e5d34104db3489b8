"""Money Mind interview: fixed, ordered question set and answer validation."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from .errors import InvalidInput

QuestionType = Literal["multiple-choice", "multi-select", "range", "text"]

TEXT_ANSWER_MAX_LEN = 2000


@dataclass(frozen=True)
class InterviewQuestion:
    id: str
    type: QuestionType
    question: str
    options: tuple[str, ...] = field(default_factory=tuple)
    min: int | None = None
    max: int | None = None
    step: int | None = None
    required: bool = True

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "question": self.question,
            "required": self.required,
        }
        if self.options:
            payload["options"] = list(self.options)
        if self.type == "range":
            payload.update({"min": self.min, "max": self.max, "step": self.step})
        return payload


INTERVIEW_QUESTIONS: tuple[InterviewQuestion, ...] = (
    InterviewQuestion(
        "financial-goals",
        "multi-select",
        "What are your main financial goals?",
        (
            "Build an emergency fund",
            "Pay off debt",
            "Save for a house",
            "Plan for retirement",
            "Invest in the stock market",
            "Start a business",
            "Save for vacation",
            "Improve credit score",
            "Budget better",
            "Other",
        ),
    ),
    InterviewQuestion(
        "current-situation",
        "multiple-choice",
        "How would you describe your current financial situation?",
        (
            "Living paycheck to paycheck",
            "Breaking even most months",
            "Saving a little each month",
            "Saving consistently",
            "Investing regularly",
            "Financially comfortable",
        ),
    ),
    InterviewQuestion(
        "monthly-income",
        "range",
        "What's your approximate monthly take-home income?",
        min=1000,
        max=20000,
        step=500,
    ),
    InterviewQuestion(
        "money-childhood",
        "multiple-choice",
        "How was money talked about in your childhood?",
        (
            "Money was a source of stress and conflict",
            "We never talked about money",
            "Money was always tight - we had to be careful",
            "We lived comfortably but were taught to save",
            "Money was abundant and not a concern",
            "I learned good money habits from my parents",
        ),
    ),
    InterviewQuestion(
        "money-feeling",
        "multiple-choice",
        "When you think about your finances, what's the first emotion that comes up?",
        (
            "Anxiety or stress",
            "Guilt or shame",
            "Confusion or overwhelm",
            "Hope but uncertainty",
            "Neutral - I try not to think about it",
            "Confident and in control",
            "Motivated to do better",
        ),
    ),
    InterviewQuestion(
        "money-avoidance",
        "multiple-choice",
        "How often do you avoid looking at your bank account or bills?",
        (
            "Almost always - I hate checking",
            "Often - especially when I know it's bad",
            "Sometimes - depends on my mood",
            "Rarely - I check pretty regularly",
            "Never - I monitor my finances closely",
        ),
    ),
    InterviewQuestion(
        "spending-triggers",
        "multi-select",
        "What emotions or situations trigger you to spend money?",
        (
            "Stress or anxiety",
            "Boredom",
            "Sadness or depression",
            "Celebrating good news",
            "Social pressure (keeping up with friends)",
            'Sales or "good deals"',
            "Feeling like I deserve it",
            "Retail therapy after a bad day",
            "FOMO (fear of missing out)",
            "Convenience (too tired to cook/plan)",
            "None - I rarely impulse spend",
        ),
    ),
    InterviewQuestion(
        "impulse-behavior",
        "multiple-choice",
        "After an impulse purchase, how do you typically feel?",
        (
            "Immediate regret and guilt",
            "Fine at first, then regret later",
            "Justified - I can explain why I needed it",
            "Happy and satisfied",
            "I don't really think about it",
            "I rarely make impulse purchases",
        ),
    ),
    InterviewQuestion(
        "spending-weakness",
        "multi-select",
        "Where does your money seem to disappear?",
        (
            "Dining out and food delivery",
            "Online shopping",
            "Subscriptions I forget about",
            "Entertainment and streaming",
            "Clothes and fashion",
            "Technology and gadgets",
            "Travel and experiences",
            "Gifts for others",
            "Self-care and beauty",
            "Hobbies",
            "Convenience items",
            "I'm not sure - it just disappears",
        ),
    ),
    InterviewQuestion(
        "saving-frequency",
        "multiple-choice",
        "How consistently do you save money?",
        (
            "Never - there's nothing left to save",
            "Rarely - only when I have extra",
            "Sometimes - I try but often fail",
            "Usually - most months I save something",
            "Always - I save automatically before spending",
        ),
    ),
    InterviewQuestion(
        "saving-barrier",
        "multiple-choice",
        "What's the biggest barrier to saving more money?",
        (
            "I genuinely don't have enough income",
            "I spend too much on wants vs needs",
            "Unexpected expenses keep coming up",
            "I don't know how much I should save",
            "I prioritize enjoying life now",
            "Debt payments take up my money",
            "I'm actually saving fine - no major barriers",
        ),
    ),
    InterviewQuestion(
        "money-belief",
        "multiple-choice",
        "Which statement best describes your money mindset?",
        (
            "Money is stressful and I'll never have enough",
            "I'm bad with money and always will be",
            "Money is confusing and I don't understand it",
            "I could be good with money if I tried harder",
            "I'm learning and getting better with money",
            "I'm confident in my ability to manage money",
        ),
    ),
    InterviewQuestion(
        "debt-situation",
        "multiple-choice",
        "How much debt are you currently carrying?",
        (
            "No debt",
            "Less than $5,000",
            "$5,000 - $15,000",
            "$15,000 - $50,000",
            "$50,000 - $100,000",
            "More than $100,000",
        ),
    ),
    InterviewQuestion(
        "emergency-fund",
        "multiple-choice",
        "How many months of expenses could you cover with your emergency fund?",
        (
            "No emergency fund",
            "Less than 1 month",
            "1-2 months",
            "3-5 months",
            "6+ months",
        ),
    ),
    InterviewQuestion(
        "money-why",
        "text",
        "Why do you want to be better with money?",
    ),
    InterviewQuestion(
        "biggest-fear",
        "multiple-choice",
        "What's your biggest financial fear?",
        (
            "Never getting out of debt",
            "Not being able to retire",
            "Being a burden to my family",
            "Losing my job and not having savings",
            "Never being able to afford a home",
            "Always living paycheck to paycheck",
            "Not being able to provide for my kids",
            "Unexpected medical expenses",
        ),
    ),
    InterviewQuestion(
        "additional-info",
        "text",
        "Is there anything else you'd like me to know about your relationship with money?",
        required=False,
    ),
)

QUESTIONS_BY_ID: dict[str, InterviewQuestion] = {item.id: item for item in INTERVIEW_QUESTIONS}


def _normalize_shape(responses: Any) -> dict[str, Any]:
    # Accept {"questionId": answer} or [{"questionId": ..., "answer": ...}].
    if isinstance(responses, dict):
        return dict(responses)
    if isinstance(responses, list):
        normalized: dict[str, Any] = {}
        for index, item in enumerate(responses):
            if not isinstance(item, dict) or "questionId" not in item:
                raise InvalidInput(f"responses[{index}]", "must be an object with questionId and answer")
            normalized[str(item["questionId"])] = item.get("answer")
        return normalized
    raise InvalidInput("responses", "must be an object keyed by question id")


def _is_blank(answer: Any) -> bool:
    if answer is None:
        return True
    if isinstance(answer, str):
        return not answer.strip()
    if isinstance(answer, list):
        return not answer
    return False


def _validate_answer(question: InterviewQuestion, answer: Any) -> Any:
    field_name = f"responses.{question.id}"

    if question.type == "multiple-choice":
        if not isinstance(answer, str) or answer not in question.options:
            raise InvalidInput(field_name, "must be one of the listed options")
        return answer

    if question.type == "multi-select":
        if isinstance(answer, str):
            answer = [answer]
        if not isinstance(answer, list) or not all(isinstance(item, str) for item in answer):
            raise InvalidInput(field_name, "must be a list of options")
        unknown = [item for item in answer if item not in question.options]
        if unknown:
            raise InvalidInput(field_name, f"unknown option: {unknown[0]}")
        return list(dict.fromkeys(answer))

    if question.type == "range":
        if isinstance(answer, bool):
            raise InvalidInput(field_name, "must be a number")
        try:
            value = Decimal(str(answer))
        except (InvalidOperation, ValueError) as exc:
            raise InvalidInput(field_name, "must be a number") from exc
        if not value.is_finite() or value < question.min or value > question.max:
            raise InvalidInput(field_name, f"must be between {question.min} and {question.max}")
        return int(value)

    if not isinstance(answer, str):
        raise InvalidInput(field_name, "must be text")
    text = answer.strip()
    if len(text) > TEXT_ANSWER_MAX_LEN:
        raise InvalidInput(field_name, f"must be at most {TEXT_ANSWER_MAX_LEN} characters")
    return text


def validate_interview_responses(responses: Any) -> dict[str, Any]:
    """
    Validate a completed interview, in question order.

    Rules:
    - every required question has an answer
    - choice answers use only listed options
    - range answers are numbers inside [min, max]
    - unknown question ids are rejected
    """
    raw = _normalize_shape(responses)

    unknown_ids = [key for key in raw if key not in QUESTIONS_BY_ID]
    if unknown_ids:
        raise InvalidInput(f"responses.{unknown_ids[0]}", "is not an interview question")

    validated: dict[str, Any] = {}
    for question in INTERVIEW_QUESTIONS:
        answer = raw.get(question.id)
        if _is_blank(answer):
            if question.required:
                raise InvalidInput(f"responses.{question.id}", "is required")
            continue
        validated[question.id] = _validate_answer(question, answer)
    return validated


def answered_questions(validated: dict[str, Any]) -> list[dict[str, Any]]:
    return [
        {"question": question.question, "answer": validated[question.id]}
        for question in INTERVIEW_QUESTIONS
        if question.id in validated
    ]
