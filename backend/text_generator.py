from typing import Any, List, Optional

from gemini_client import GeminiClient
from models import AttributeDefinition, AttributeValue, IntentClassification
from prompts import (
    REQUIRED_ATTRIBUTES_SHAPE, ATTRIBUTE_SHAPE, ATTRIBUTE_VALUES_SHAPE, INTENT_SHAPE,
    build_required_attributes_prompt, build_attribute_prompt,
    build_attributes_prompt, build_intent_prompt,
)
from text_utils import truncate_text, get_str, get_float, get_dict_list

SINGLE_ATTRIBUTE_TEXT_LIMIT = 5000
TEXT_LIMIT = 8000

NO_CONTENT = "No content"

UNCLEAR_INTENT = IntentClassification(
    label_name="Unclear Intent",
    label="unclear_intent",
    description="The conversation transcript is unclear or does not contain a discernible customer service request.",
)


class TextGenerator:
    """Attribute extraction and intent classification for single conversations."""

    def __init__(self, client: GeminiClient):
        self.client = client

    async def generate_required_attributes(
        self,
        questions: List[str],
        existing_attributes: Optional[List[str]] = None,
    ) -> List[AttributeDefinition]:
        """Ask which attributes must be extracted to answer ``questions``."""
        if not questions:
            raise ValueError("questions are required")

        result = await self.client.generate_content(
            build_required_attributes_prompt(questions, existing_attributes),
            REQUIRED_ATTRIBUTES_SHAPE,
        )

        attributes = []
        for item in get_dict_list(result, "attributes"):
            field_name = get_str(item, "field_name")
            if not field_name:
                continue
            attributes.append(AttributeDefinition(
                field_name=field_name,
                title=get_str(item, "title"),
                description=get_str(item, "description"),
                rationale=get_str(item, "rationale"),
            ))
        return attributes

    async def generate_attribute(self, text: str, attribute: AttributeDefinition) -> AttributeValue:
        if not text.strip():
            return AttributeValue(
                field_name=attribute.field_name, value=NO_CONTENT, confidence=0.0,
                explanation="No text was provided",
            )

        result = await self.client.generate_content(
            build_attribute_prompt(
                attribute.title or attribute.field_name,
                attribute.description,
                truncate_text(text, SINGLE_ATTRIBUTE_TEXT_LIMIT),
            ),
            ATTRIBUTE_SHAPE,
        )
        return AttributeValue(
            field_name=attribute.field_name,
            value=get_str(result, "value"),
            confidence=get_float(result, "confidence"),
            explanation=get_str(result, "explanation"),
        )

    async def generate_attributes(self, text: str, attributes: List[AttributeDefinition]) -> List[AttributeValue]:
        """Extract every attribute from ``text`` in a single call."""
        if not attributes:
            return []

        if not text.strip():
            return [
                AttributeValue(
                    field_name=attr.field_name, value=NO_CONTENT, confidence=0.0,
                    explanation="No text was provided",
                )
                for attr in attributes
            ]

        result = await self.client.generate_content(
            build_attributes_prompt(
                [attr.model_dump() for attr in attributes],
                truncate_text(text, TEXT_LIMIT),
            ),
            ATTRIBUTE_VALUES_SHAPE,
        )

        values = []
        for item in get_dict_list(result, "attribute_values"):
            field_name = get_str(item, "field_name")
            if not field_name:
                continue
            values.append(AttributeValue(
                field_name=field_name,
                value=get_str(item, "value"),
                confidence=get_float(item, "confidence"),
                explanation=get_str(item, "explanation"),
            ))
        return values

    async def generate_intent(self, text: str) -> IntentClassification:
        if not text.strip():
            return UNCLEAR_INTENT

        result = await self.client.generate_content(
            build_intent_prompt(truncate_text(text, TEXT_LIMIT)), INTENT_SHAPE
        )

        label_name = get_str(result, "label_name").strip()
        if not label_name:
            return UNCLEAR_INTENT

        label = get_str(result, "label").strip() or label_name.lower().replace(" ", "_")
        return IntentClassification(
            label_name=label_name,
            label=label,
            description=get_str(result, "description"),
        )


def parse_attribute_definitions(raw: Any) -> List[AttributeDefinition]:
    """Read caller-supplied attribute definitions (objects with at least ``field_name``)."""
    if not isinstance(raw, list) or not raw:
        raise ValueError("attributes parameter is required and must be an array")

    definitions = []
    for item in raw:
        if isinstance(item, str) and item:
            definitions.append(AttributeDefinition(field_name=item, title=item))
            continue
        if not isinstance(item, dict):
            continue
        field_name = get_str(item, "field_name")
        if not field_name:
            continue
        definitions.append(AttributeDefinition(
            field_name=field_name,
            title=get_str(item, "title") or get_str(item, "name") or field_name,
            description=get_str(item, "description"),
            rationale=get_str(item, "rationale"),
        ))

    if not definitions:
        raise ValueError("at least one valid attribute definition is required")
    return definitions
