import typing

import boto3

REGION = "us-west-1"

CURRICULUM_TABLE_NAME = "CurriculumTable"
CONTENT_PROGRESS_TABLE_NAME = "ContentProgressTable"
ENROLLMENTS_TABLE_NAME = "EnrollmentsTable"
TEST_RESULTS_TABLE_NAME = "TestResultsTable"
USER_PROFILE_TABLE_NAME = "UserProfileTable"

_KEY_SCHEMAS: dict[str, tuple[str, typing.Optional[str]]] = {
    CURRICULUM_TABLE_NAME: ("entityKey", None),
    CONTENT_PROGRESS_TABLE_NAME: ("userId", "contentId"),
    ENROLLMENTS_TABLE_NAME: ("userId", "moduleId"),
    TEST_RESULTS_TABLE_NAME: ("userId", "testKey"),
    USER_PROFILE_TABLE_NAME: ("userId", None),
}


def create_table(table_name: str) -> None:
    """Creates one of the certification tables. Must be called inside an active mock_aws context."""
    hash_key, range_key = _KEY_SCHEMAS[table_name]
    key_schema = [{"AttributeName": hash_key, "KeyType": "HASH"}]
    attribute_definitions = [{"AttributeName": hash_key, "AttributeType": "S"}]
    if range_key:
        key_schema.append({"AttributeName": range_key, "KeyType": "RANGE"})
        attribute_definitions.append({"AttributeName": range_key, "AttributeType": "S"})

    dynamodb = boto3.resource("dynamodb", region_name=REGION)
    dynamodb.create_table(
        TableName=table_name,
        KeySchema=key_schema,
        AttributeDefinitions=attribute_definitions,
        BillingMode="PAY_PER_REQUEST",
    )


def create_all_tables() -> None:
    for table_name in _KEY_SCHEMAS:
        create_table(table_name)


class CurriculumSeeder:
    """Writes curriculum entities straight into the mocked curriculum table."""

    def __init__(self, table_name: str = CURRICULUM_TABLE_NAME) -> None:
        self.table = boto3.resource("dynamodb", region_name=REGION).Table(table_name)

    def _put(self, kind: str, entity_id: str, **fields: typing.Any) -> None:
        self.table.put_item(Item={"entityKey": f"{kind}#{entity_id}", "id": entity_id, **fields})

    def add_module(
        self, module_id: str, level_ids: list[str], module_test_id: typing.Optional[str] = None, is_active: bool = True
    ) -> None:
        fields: dict[str, typing.Any] = {"title": f"Module {module_id}", "levelIds": level_ids, "isActive": is_active}
        if module_test_id:
            fields["moduleTestId"] = module_test_id
        self._put("MODULE", module_id, **fields)

    def add_level(
        self,
        level_id: str,
        module_id: str,
        sub_topic_ids: list[str],
        order_index: int = 0,
        level_test_id: typing.Optional[str] = None,
    ) -> None:
        fields: dict[str, typing.Any] = {
            "moduleId": module_id,
            "title": f"Level {level_id}",
            "orderIndex": order_index,
            "subTopicIds": sub_topic_ids,
        }
        if level_test_id:
            fields["levelTestId"] = level_test_id
        self._put("LEVEL", level_id, **fields)

    def add_sub_topic(
        self,
        sub_topic_id: str,
        level_id: str,
        content_ids: list[str],
        order_index: int = 0,
        sub_topic_test_id: typing.Optional[str] = None,
    ) -> None:
        fields: dict[str, typing.Any] = {
            "levelId": level_id,
            "title": f"Sub-topic {sub_topic_id}",
            "orderIndex": order_index,
            "contentIds": content_ids,
        }
        if sub_topic_test_id:
            fields["subTopicTestId"] = sub_topic_test_id
        self._put("SUB_TOPIC", sub_topic_id, **fields)

    def add_content(self, content_id: str, sub_topic_id: str, order_index: int = 0, is_published: bool = True) -> None:
        self._put("CONTENT", content_id, subTopicId=sub_topic_id, orderIndex=order_index, isPublished=is_published)

    def add_test(
        self,
        test_id: str,
        test_kind: str,
        parent_id: str,
        question_count: int,
        passing_score: int = 70,
        is_active: bool = True,
    ) -> list[str]:
        """
        Adds a test whose questions each have a correct option "a" and a wrong option "b".

        :return: the question ids, in order.
        """
        question_ids = [f"{test_id}-q{i}" for i in range(1, question_count + 1)]
        for question_id in question_ids:
            self._put(
                "QUESTION",
                question_id,
                options=[{"optionId": "a", "isCorrect": True}, {"optionId": "b", "isCorrect": False}],
            )
        self._put(
            "TEST",
            test_id,
            testKind=test_kind,
            parentId=parent_id,
            questionIds=question_ids,
            totalQuestions=question_count,
            passingScore=passing_score,
            isActive=is_active,
        )
        return question_ids

    def add_simple_module(
        self,
        module_id: str,
        levels: int,
        sub_topics_per_level: int,
        contents_per_sub_topic: int = 1,
        questions_per_test: int = 10,
    ) -> None:
        """
        Adds a module named <module_id> with levels L1..Ln, subtopics L1-S1.. and content L1-S1-C1..
        Every subtopic and level gets a test (<id>-test), and the module gets <module_id>-test.
        """
        level_ids = [f"L{i}" for i in range(1, levels + 1)]
        self.add_module(module_id, level_ids, module_test_id=f"{module_id}-test")
        self.add_test(f"{module_id}-test", "MODULE", module_id, questions_per_test)

        for level_index, level_id in enumerate(level_ids):
            sub_topic_ids = [f"{level_id}-S{j}" for j in range(1, sub_topics_per_level + 1)]
            self.add_level(
                level_id, module_id, sub_topic_ids, order_index=level_index, level_test_id=f"{level_id}-test"
            )
            self.add_test(f"{level_id}-test", "LEVEL", level_id, questions_per_test)

            for sub_topic_index, sub_topic_id in enumerate(sub_topic_ids):
                content_ids = [f"{sub_topic_id}-C{k}" for k in range(1, contents_per_sub_topic + 1)]
                self.add_sub_topic(
                    sub_topic_id,
                    level_id,
                    content_ids,
                    order_index=sub_topic_index,
                    sub_topic_test_id=f"{sub_topic_id}-test",
                )
                self.add_test(f"{sub_topic_id}-test", "SUB_TOPIC", sub_topic_id, questions_per_test)
                for content_index, content_id in enumerate(content_ids):
                    self.add_content(content_id, sub_topic_id, order_index=content_index)


def answers_with_correct_count(question_ids: list[str], correct: int) -> dict[str, str]:
    """Answers the first <correct> questions correctly and the rest wrongly."""
    return {question_id: ("a" if i < correct else "b") for i, question_id in enumerate(question_ids)}
