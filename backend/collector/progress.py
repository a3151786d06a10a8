"""Line protocol spoken by the collection program on stdout.

A structured line is ``__PROGRESS__{json}``; every other line is plain log
text. Parsing never raises: a prefixed line whose payload is not valid JSON or
does not match the event schema is downgraded to plain text unchanged.
"""
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, ValidationError

PROGRESS_PREFIX = "__PROGRESS__"


class ProgressEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    phase: str
    processed: float = Field(ge=0)
    total: float = Field(ge=0)
    percent: float = Field(ge=0, le=100)
    message: str | None = None
    output_path: str | None = Field(default=None, alias="outputPath")
    eta_seconds: float | None = Field(default=None, alias="etaSeconds")

    def as_progress(self) -> dict:
        """Progress fields as stored on a job record.

        An event without a message leaves the stored message untouched.
        """
        return self.model_dump(include={"phase", "processed", "total", "percent", "message"}, exclude_none=True)


@dataclass(frozen=True)
class PlainText:
    text: str


LogLine = ProgressEvent | PlainText


def parse_line(line: str) -> LogLine:
    """Classify one line of worker output."""
    text = line.rstrip("\r\n")
    stripped = text.strip()
    if not stripped.startswith(PROGRESS_PREFIX):
        return PlainText(text)

    payload = stripped[len(PROGRESS_PREFIX):]
    try:
        return ProgressEvent.model_validate_json(payload)
    except ValidationError:
        return PlainText(text)


def format_event(event: ProgressEvent) -> str:
    return PROGRESS_PREFIX + event.model_dump_json(by_alias=True, exclude_none=True)
