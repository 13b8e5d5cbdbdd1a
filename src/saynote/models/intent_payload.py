"""Pydantic models for the structured payload returned by an NLU provider.

The provider (typically an LLM) answers with one JSON object per transcript.
Field names are camelCase on the wire; the models accept either spelling.
Unknown keys are ignored so that chatty providers do not fail validation.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class IntentAction(str, Enum):
    """Action vocabulary of the NLU grammar."""

    INSERT_CONTENT = "INSERT_CONTENT"
    DELETE_BLOCK = "DELETE_BLOCK"
    CREATE_PAGE = "CREATE_PAGE"
    APPLY_FORMATTING = "APPLY_FORMATTING"
    REMOVE_FORMATTING = "REMOVE_FORMATTING"
    SELECT_TEXT = "SELECT_TEXT"
    REPLACE_TEXT = "REPLACE_TEXT"
    MODIFY_BLOCK = "MODIFY_BLOCK"
    APPEND_TEXT = "APPEND_TEXT"
    PREPEND_TEXT = "PREPEND_TEXT"
    UNDO = "UNDO"
    REDO = "REDO"
    CLARIFICATION = "CLARIFICATION"


class SelectionRangePayload(BaseModel):
    """A text range inside one block, by offsets or by anchor text."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    block_id: Optional[str] = Field(
        default=None,
        alias="blockId",
        description="Block holding the range (resolved from targets when omitted)"
    )

    start_offset: Optional[int] = Field(
        default=None,
        ge=0,
        alias="startOffset",
        description="Start character offset in the block text"
    )

    end_offset: Optional[int] = Field(
        default=None,
        ge=0,
        alias="endOffset",
        description="End character offset (exclusive)"
    )

    start_text: Optional[str] = Field(
        default=None,
        alias="startText",
        description="Text where the range begins"
    )

    end_text: Optional[str] = Field(
        default=None,
        alias="endText",
        description="Text where the range ends (inclusive)"
    )


class RawBlockPayload(BaseModel):
    """A block suggested by the provider for insertion.

    ``content`` may be a plain string or a list of inline runs in the
    document wire format.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    type: str = Field(
        default="paragraph",
        description="Block type name (aliases such as 'checkListItem' accepted)"
    )

    content: Union[str, List[Dict[str, Any]]] = Field(
        default="",
        description="Block text or inline runs"
    )

    props: Dict[str, Any] = Field(
        default_factory=dict,
        description="Block props (heading level, checked, ...)"
    )

    children: List["RawBlockPayload"] = Field(
        default_factory=list,
        description="Nested blocks"
    )


class RawIntentPayload(BaseModel):
    """One NLU answer.

    Only ``action`` is required; which other fields matter depends on it.
    Validation failures are treated by the interpreter as unrecognized commands.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    action: IntentAction = Field(
        ...,
        description="What the command asks for"
    )

    target_block_ids: List[str] = Field(
        default_factory=list,
        alias="targetBlockIds",
        description="Explicit block ids from the rendered document"
    )

    target_block_type: Optional[str] = Field(
        default=None,
        alias="targetBlockType",
        description="Restrict targets to one block type ('all headings')"
    )

    target_position: Optional[str] = Field(
        default=None,
        alias="targetPosition",
        description="'first', 'last', 'all' or a 1-based ordinal"
    )

    target_text: Optional[str] = Field(
        default=None,
        alias="targetText",
        description="Text that identifies the target (or the text to format/select)"
    )

    use_current_selection: bool = Field(
        default=False,
        alias="useCurrentSelection",
        description="Command refers to 'this' / the selected block"
    )

    selection_type: Optional[str] = Field(
        default=None,
        alias="selectionType",
        description="BLOCK, TEXT, RANGE or ALL for SELECT_TEXT"
    )

    selection_range: Optional[SelectionRangePayload] = Field(
        default=None,
        alias="selectionRange",
        description="Text range for selection, formatting or deletion"
    )

    formatting_type: Optional[str] = Field(
        default=None,
        alias="formattingType",
        description="BOLD, ITALIC, UNDERLINE, STRIKE, CODE, TEXT_COLOR, BACKGROUND_COLOR or REMOVE_FORMATTING"
    )

    modification_type: Optional[str] = Field(
        default=None,
        alias="modificationType",
        description="CHANGE_TYPE, CHANGE_HEADING_LEVEL, CONVERT_TO_LIST, CHANGE_COLOR, ..."
    )

    text_color: Optional[str] = Field(
        default=None,
        alias="textColor",
        description="Color name for color changes"
    )

    new_color: Optional[str] = Field(
        default=None,
        alias="newColor",
        description="Alternative name for textColor"
    )

    background_color: Optional[str] = Field(
        default=None,
        alias="backgroundColor",
        description="Background (highlight) color name"
    )

    new_type: Optional[str] = Field(
        default=None,
        alias="newType",
        description="Target block type for MODIFY_BLOCK"
    )

    list_type: Optional[str] = Field(
        default=None,
        alias="listType",
        description="bullet, numbered or todo for list conversions"
    )

    heading_level: Optional[int] = Field(
        default=None,
        alias="headingLevel",
        description="Heading level (clamped to 1-3)"
    )

    find_text: Optional[str] = Field(
        default=None,
        alias="findText",
        description="Text to find for REPLACE_TEXT"
    )

    replace_with: Optional[str] = Field(
        default=None,
        alias="replaceWith",
        description="Replacement text for REPLACE_TEXT"
    )

    page_title: Optional[str] = Field(
        default=None,
        alias="pageTitle",
        description="Title for CREATE_PAGE"
    )

    page_icon: Optional[str] = Field(
        default=None,
        alias="pageIcon",
        description="Icon for CREATE_PAGE"
    )

    steps: int = Field(
        default=1,
        description="Step count for UNDO/REDO"
    )

    blocks: List[RawBlockPayload] = Field(
        default_factory=list,
        description="Structured blocks for INSERT_CONTENT"
    )

    content: Optional[str] = Field(
        default=None,
        description="Plain text for INSERT_CONTENT / APPEND_TEXT"
    )

    message: Optional[str] = Field(
        default=None,
        description="Explanation for CLARIFICATION"
    )

    @field_validator("action", mode="before")
    @classmethod
    def normalize_action(cls, v: Any) -> Any:
        """Accept lower-case and space-separated action names."""
        if isinstance(v, str):
            return v.strip().upper().replace(" ", "_").replace("-", "_")
        return v

    @field_validator("steps", mode="before")
    @classmethod
    def clamp_steps(cls, v: Any) -> int:
        """Missing or non-positive step counts mean one step."""
        try:
            steps = int(v)
        except (TypeError, ValueError):
            return 1
        return max(steps, 1)

    @field_validator("heading_level", mode="before")
    @classmethod
    def clamp_heading_level(cls, v: Any) -> Optional[int]:
        if v is None:
            return None
        try:
            level = int(v)
        except (TypeError, ValueError):
            return None
        return min(max(level, 1), 3)
