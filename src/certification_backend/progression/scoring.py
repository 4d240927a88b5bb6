import typing
from decimal import ROUND_HALF_UP, Decimal

from certification_backend.models.curriculum_models import AssessmentModel, QuestionModel
from certification_backend.progression.errors import InvalidRequestError
from certification_backend.utils.base_types import OptionId, QuestionId, SubTopicId


class ScoreOutcome(typing.NamedTuple):
    score: int
    correct_answers: int
    total_questions: int
    passed: bool


def round_half_up(numerator: int, denominator: int) -> int:
    """round(100 * n / d) with halves rounded up, matching what learners see in the UI."""
    if denominator <= 0:
        return 0
    value = Decimal(100 * numerator) / Decimal(denominator)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def clamp_percentage(value: int) -> int:
    return max(0, min(100, value))


def compute_progress_percentage(
    completed_sub_topic_ids: typing.Iterable[SubTopicId],
    module_sub_topic_ids: typing.Iterable[SubTopicId],
) -> int:
    module_ids = set(module_sub_topic_ids)
    if not module_ids:
        return 0
    completed_in_module = module_ids.intersection(completed_sub_topic_ids)
    return clamp_percentage(round_half_up(len(completed_in_module), len(module_ids)))


def score_answers(
    test: AssessmentModel,
    questions: dict[QuestionId, QuestionModel],
    answers: dict[QuestionId, OptionId],
) -> ScoreOutcome:
    """
    Grades an answer map against the test's answer key. Unanswered questions count as wrong.

    :raises InvalidRequestError: if an answer refers to a question that is not part of the test.
    """
    unknown = sorted(set(answers) - set(test.questionIds))
    if unknown:
        raise InvalidRequestError("Answers reference questions that are not part of this test.", details=unknown)

    correct_answers = 0
    for question_id in test.questionIds:
        selected = answers.get(question_id)
        question = questions.get(question_id)
        if selected is not None and question is not None and question.is_correct_option(selected):
            correct_answers += 1

    total_questions = test.totalQuestions
    score = clamp_percentage(round_half_up(correct_answers, total_questions))
    return ScoreOutcome(
        score=score,
        correct_answers=correct_answers,
        total_questions=total_questions,
        passed=score >= test.passingScore,
    )
