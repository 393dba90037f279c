"""
Typed Jira REST responses
"""

from typing import Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import DecodeError

M = TypeVar("M", bound=BaseModel)


class JiraModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CreatedWorklog(JiraModel):
    """Worklog as returned by POST/PUT issue/{key}/worklog"""
    id: int
    issue_id: Optional[str] = Field(default=None, alias="issueId")
    time_spent_seconds: Optional[int] = Field(default=None, alias="timeSpentSeconds")


class CreatedIssue(JiraModel):
    """Issue as returned by POST issue/"""
    id: str
    key: str


class IssueType(JiraModel):
    name: str


class Subtask(JiraModel):
    key: str


class IssueFields(JiraModel):
    summary: Optional[str] = None
    issuetype: Optional[IssueType] = None
    subtasks: list[Subtask] = Field(default_factory=list)


class Issue(JiraModel):
    key: str
    id: Optional[str] = None
    fields: Optional[IssueFields] = None

    @property
    def is_epic(self) -> bool:
        return bool(
            self.fields
            and self.fields.issuetype
            and self.fields.issuetype.name.lower() == "epic"
        )

    @property
    def subtask_keys(self) -> list[str]:
        if self.fields is None:
            return []
        return [subtask.key for subtask in self.fields.subtasks]


class SearchResult(JiraModel):
    """Response of POST search/"""
    issues: list[Issue] = Field(default_factory=list)
    total: Optional[int] = None
    max_results: Optional[int] = Field(default=None, alias="maxResults")


def decode(model: type[M], payload: object) -> M:
    """Validate a decoded JSON payload against model"""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise DecodeError(f"Unexpected {model.__name__} response from Jira: {e}", 500) from e
