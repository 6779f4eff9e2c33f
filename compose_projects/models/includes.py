"""Include directive models.

The root-level ``include`` key of a compose document takes one of three
shapes::

    include: other.yaml

    include:
      - other.yaml
      - path: [base.yaml, override.yaml]
        project_directory: ..

Each list entry is either a bare path string or an object whose ``path`` is
a string or list of strings. ``INCLUDE_DIRECTIVE`` decodes the whole value
into that union so callers never inspect raw YAML types.
"""

from typing import Annotated, Any

from pydantic import ConfigDict, Field, StringConstraints, TypeAdapter

from .project import ComposeModel

IncludePath = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class IncludeObject(ComposeModel):
    """Long-form include entry."""

    model_config = ConfigDict(extra="allow")

    path: IncludePath | list[IncludePath] = Field(..., description="File(s) to include")
    project_directory: str | None = None
    env_file: str | list[str] | None = None

    def paths(self) -> list[str]:
        if isinstance(self.path, str):
            return [self.path]
        return list(self.path)


IncludeEntry = IncludePath | IncludeObject
IncludeValue = IncludePath | list[IncludeEntry]

INCLUDE_DIRECTIVE: TypeAdapter[IncludeValue] = TypeAdapter(IncludeValue)


def include_paths(value: IncludeValue) -> list[str]:
    """Flatten a decoded include directive into path references, in order."""
    if isinstance(value, str):
        return [value]
    paths: list[str] = []
    for entry in value:
        if isinstance(entry, IncludeObject):
            paths.extend(entry.paths())
        else:
            paths.append(entry)
    return paths


class IncludeFile(ComposeModel):
    """One resolved include target."""

    path: str
    relative_path: str
    content: str

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()
