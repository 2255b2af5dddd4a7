"""Request bodies accepted by the HTTP API (camelCase on the wire)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from vidblog.models import PublishTarget


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PublishTargetIn(_Body):
    site_url: str = Field(min_length=1)
    username: str = Field(min_length=1)
    app_password: str = Field(min_length=1, repr=False)

    def to_target(self) -> PublishTarget:
        return PublishTarget(site_url=self.site_url, username=self.username, app_password=self.app_password)


class CreateJobIn(_Body):
    source_url: str
    publish: bool = False


class GenerateIn(_Body):
    title_hint: str | None = None


class InlineGenerateIn(_Body):
    transcript: str
    title_hint: str | None = None


class EditBlogIn(_Body):
    title: str | None = Field(default=None, min_length=1)
    content: str | None = Field(default=None, min_length=1)


class PublishIn(_Body):
    target: PublishTargetIn | None = None


class WorkflowIn(_Body):
    source_url: str
    publish: bool = False
    target: PublishTargetIn | None = None
    title_hint: str | None = None
