import logging
import typing

import boto3
from botocore.exceptions import ClientError
from pydantic import BaseModel, ValidationError

from certification_backend.models.curriculum_models import (
    AssessmentModel,
    ContentModel,
    LevelModel,
    LevelOutlineModel,
    ModuleModel,
    ModuleOutlineModel,
    QuestionModel,
    SubTopicModel,
)
from certification_backend.utils.base_types import (
    ContentId,
    LevelId,
    ModuleId,
    QuestionId,
    SubTopicId,
    TestId,
)

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

EntityKind = typing.Literal["MODULE", "LEVEL", "SUB_TOPIC", "CONTENT", "TEST", "QUESTION"]

_ModelT = typing.TypeVar("_ModelT", bound=BaseModel)

# DynamoDB caps BatchGetItem at 100 keys per request
_BATCH_GET_LIMIT = 100


class CurriculumTable:
    """
    Read-only Data Abstraction Layer over the curriculum structure written by the authoring tools.

    Table Schema:
      - PK: entityKey (String - e.g., "MODULE#<id>", "LEVEL#<id>", "SUB_TOPIC#<id>", "CONTENT#<id>",
        "TEST#<id>", "QUESTION#<id>")
    The remaining attributes are the camelCase fields of the matching model in curriculum_models.
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    @staticmethod
    def make_entity_key(kind: EntityKind, entity_id: str) -> str:
        return f"{kind}#{entity_id}"

    def _get_entity(self, kind: EntityKind, entity_id: str, model: type[_ModelT]) -> typing.Optional[_ModelT]:
        entity_key = self.make_entity_key(kind, entity_id)
        try:
            response = self.table.get_item(Key={"entityKey": entity_key})
        except ClientError as e:
            _LOGGER.error(f"Failed to get curriculum entity {entity_key}: {e.response['Error']['Message']}")
            raise

        item_data = response.get("Item")
        if not item_data:
            _LOGGER.debug(f"No curriculum entity found for {entity_key}")
            return None
        try:
            return model.model_validate(item_data)
        except ValidationError as ve:
            _LOGGER.error(f"Failed to validate curriculum entity {entity_key}: {ve}", exc_info=True)
            return None

    def _batch_get_entities(
        self, kind: EntityKind, entity_ids: typing.Iterable[str], model: type[_ModelT]
    ) -> dict[str, _ModelT]:
        """
        BatchGetItem in chunks of 100 keys, retrying unprocessed keys until the table has answered for all of them.
        Ids that do not resolve or fail validation are left out of the result.
        """
        unique_ids = list(dict.fromkeys(entity_ids))
        items: list[dict[str, typing.Any]] = []
        for start in range(0, len(unique_ids), _BATCH_GET_LIMIT):
            chunk = unique_ids[start : start + _BATCH_GET_LIMIT]
            request_items: dict[str, typing.Any] = {
                self.table.name: {"Keys": [{"entityKey": self.make_entity_key(kind, i)} for i in chunk]}
            }
            while request_items:
                try:
                    response = self.client.batch_get_item(RequestItems=request_items)
                except ClientError as e:
                    _LOGGER.error(f"Failed to batch get {kind} entities: {e.response['Error']['Message']}")
                    raise
                items.extend(response.get("Responses", {}).get(self.table.name, []))
                request_items = response.get("UnprocessedKeys") or {}

        entities: dict[str, _ModelT] = {}
        for item_data in items:
            try:
                entity = model.model_validate(item_data)
            except ValidationError as ve:
                _LOGGER.error(f"Failed to validate curriculum entity {item_data.get('entityKey')}: {ve}", exc_info=True)
                continue
            entities[item_data["entityKey"].split("#", 1)[1]] = entity
        return entities

    def get_module(self, module_id: ModuleId) -> typing.Optional[ModuleModel]:
        return self._get_entity("MODULE", module_id, ModuleModel)

    def get_level(self, level_id: LevelId) -> typing.Optional[LevelModel]:
        return self._get_entity("LEVEL", level_id, LevelModel)

    def get_sub_topic(self, sub_topic_id: SubTopicId) -> typing.Optional[SubTopicModel]:
        return self._get_entity("SUB_TOPIC", sub_topic_id, SubTopicModel)

    def get_content(self, content_id: ContentId) -> typing.Optional[ContentModel]:
        return self._get_entity("CONTENT", content_id, ContentModel)

    def get_test(self, test_id: TestId) -> typing.Optional[AssessmentModel]:
        return self._get_entity("TEST", test_id, AssessmentModel)

    def get_questions(self, question_ids: list[QuestionId]) -> dict[QuestionId, QuestionModel]:
        """Resolves an answer key. Question ids that do not resolve are skipped and logged."""
        found = self._batch_get_entities("QUESTION", question_ids, QuestionModel)
        questions: dict[QuestionId, QuestionModel] = {}
        for question_id in question_ids:
            question = found.get(question_id)
            if question is None:
                _LOGGER.warning(f"Question {question_id} referenced by a test does not resolve.")
                continue
            questions[question_id] = question
        return questions

    def get_published_content_ids(self, sub_topic: SubTopicModel) -> set[ContentId]:
        contents = self._batch_get_entities("CONTENT", sub_topic.contentIds, ContentModel)
        return {
            ContentId(content_id)
            for content_id, content in contents.items()
            if content.isPublished and content.subTopicId == sub_topic.id
        }

    def get_module_outline(self, module_id: ModuleId) -> typing.Optional[ModuleOutlineModel]:
        """
        Resolves a module's levels and subtopics, ordered by orderIndex.
        Dangling level/subtopic ids and children pointing at a different parent are dropped.
        """
        module = self.get_module(module_id)
        if module is None:
            return None

        level_outlines: list[LevelOutlineModel] = []
        for level_id in module.levelIds:
            level = self.get_level(level_id)
            if level is None or level.moduleId != module.id:
                _LOGGER.warning(f"Module {module_id} lists level {level_id} which does not belong to it.")
                continue

            sub_topics: list[SubTopicModel] = []
            for sub_topic_id in level.subTopicIds:
                sub_topic = self.get_sub_topic(sub_topic_id)
                if sub_topic is None or sub_topic.levelId != level.id:
                    _LOGGER.warning(f"Level {level_id} lists subtopic {sub_topic_id} which does not belong to it.")
                    continue
                sub_topics.append(sub_topic)

            sub_topics.sort(key=lambda s: s.orderIndex)
            level_outlines.append(LevelOutlineModel(level=level, subTopics=sub_topics))

        level_outlines.sort(key=lambda lo: lo.level.orderIndex)
        return ModuleOutlineModel(module=module, levels=level_outlines)
