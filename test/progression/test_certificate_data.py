import typing

import pytest

from certification_backend.models.assessment_models import SubmitTestRequestModel
from certification_backend.progression.certificate_data import CertificateDataBuilder, average_score
from certification_backend.utils.base_types import ContentId, ModuleId

from ..test_utils.tables import answers_with_correct_count
from .conftest import MODULE_ID, USER_ID, CertificationStack


@pytest.mark.parametrize(
    "scores, expected",
    [
        ([], 0),
        ([80], 80),
        ([70, 80, 90], 80),
        ([85, 90], 88),  # 87.5 rounds up
        ([60, 70, 71], 67),
    ],
)
def test_average_score(scores: list[int], expected: int):
    assert average_score(scores) == expected


def _submit(
    stack: CertificationStack,
    test_kind: str,
    test_id: str,
    correct: int,
    level_id: typing.Optional[str] = None,
    sub_topic_id: typing.Optional[str] = None,
    time_spent: typing.Optional[int] = None,
) -> None:
    request = SubmitTestRequestModel.model_validate(
        {
            "testKind": test_kind,
            "testId": test_id,
            "moduleId": MODULE_ID,
            "levelId": level_id,
            "subTopicId": sub_topic_id,
            "answers": answers_with_correct_count([f"{test_id}-q{i}" for i in range(1, 11)], correct),
            "timeSpent": time_spent,
        }
    )
    stack.submission_processor.submit(USER_ID, request)


@pytest.fixture
def builder(stack: CertificationStack) -> CertificateDataBuilder:
    return CertificateDataBuilder(
        curriculum_table=stack.curriculum_table,
        enrollments_table=stack.enrollments_table,
        results_table=stack.results_table,
    )


def test_certificate_data_summarizes_scores(stack: CertificationStack, builder: CertificateDataBuilder):
    stack.seeder.add_simple_module("m1", levels=2, sub_topics_per_level=2)
    stack.enroll()
    for sub_topic_id in ["L1-S1", "L1-S2"]:
        stack.progress_aggregator.mark_content_complete(USER_ID, ContentId(f"{sub_topic_id}-C1"))

    _submit(stack, "SUB_TOPIC", "L1-S1-test", 9, level_id="L1", sub_topic_id="L1-S1", time_spent=120)
    _submit(stack, "SUB_TOPIC", "L1-S2-test", 8, level_id="L1", sub_topic_id="L1-S2")
    _submit(stack, "LEVEL", "L1-test", 6, level_id="L1")

    data = builder.build(USER_ID)

    assert data.userId == USER_ID
    assert len(data.modules) == 1
    module = data.modules[0]
    assert module.id == MODULE_ID
    assert module.title == "Module m1"
    assert module.completedAt is None
    # (90 + 80 + 60) / 3 = 76.67
    assert module.averageScore == 77

    level_one, level_two = module.levels
    assert [s.id for s in level_one.subTopics] == ["L1-S1", "L1-S2"]
    assert level_one.subTopics[0].score == 90
    assert level_one.subTopics[0].timeSpent == 120
    assert level_one.levelTest is not None
    assert level_one.levelTest.score == 60
    assert level_one.levelTest.passed is False
    assert level_one.averageScore == 77

    assert level_two.subTopics == []
    assert level_two.levelTest is None
    assert level_two.averageScore == 0


def test_certificate_data_uses_latest_attempt(stack: CertificationStack, builder: CertificateDataBuilder):
    stack.seeder.add_simple_module("m1", levels=1, sub_topics_per_level=1)
    stack.enroll()
    stack.progress_aggregator.mark_content_complete(USER_ID, ContentId("L1-S1-C1"))

    _submit(stack, "SUB_TOPIC", "L1-S1-test", 5, level_id="L1", sub_topic_id="L1-S1")
    _submit(stack, "SUB_TOPIC", "L1-S1-test", 7, level_id="L1", sub_topic_id="L1-S1")

    sub_topic = builder.build(USER_ID).modules[0].levels[0].subTopics[0]
    assert sub_topic.score == 70
    assert sub_topic.passed is True


def test_certificate_data_includes_completed_at(stack: CertificationStack, builder: CertificateDataBuilder):
    stack.seeder.add_simple_module("m1", levels=1, sub_topics_per_level=1)
    stack.enroll()
    stack.progress_aggregator.mark_content_complete(USER_ID, ContentId("L1-S1-C1"))
    _submit(stack, "MODULE", "m1-test", 10)

    module = builder.build(USER_ID).modules[0]
    assert module.completedAt is not None
    # Module test scores are not part of the subtopic and level averages
    assert module.averageScore == 0


def test_certificate_data_skips_missing_modules(stack: CertificationStack, builder: CertificateDataBuilder):
    stack.enroll(module_id=ModuleId("gone"))
    assert builder.build(USER_ID).modules == []


def test_certificate_data_without_enrollments(stack: CertificationStack, builder: CertificateDataBuilder):
    assert builder.build(USER_ID).modules == []
