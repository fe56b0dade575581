"""Typed parse run stats stored in ``document_parse_runs.stats``."""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ParseRunStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page_count: Optional[int] = Field(default=None, alias="pageCount")
    processed_pages: Optional[int] = Field(default=None, alias="processedPages")
    succeeded_pages: int = Field(default=0, alias="succeededPages")
    failed_pages: int = Field(default=0, alias="failedPages")
    failed_page_nos: List[int] = Field(default_factory=list, alias="failedPageNos")
    line_item_count: int = Field(default=0, alias="lineItemCount")
    diff_count: int = Field(default=0, alias="diffCount")
    diff_summary: Dict[str, int] = Field(default_factory=dict, alias="diffSummary")

    @classmethod
    def from_json(cls, data: Optional[dict]) -> "ParseRunStats":
        return cls.model_validate(data or {})

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")

    @property
    def pages_recorded(self) -> bool:
        """True once page preparation has stored its page counts."""
        return self.page_count is not None and self.processed_pages is not None
